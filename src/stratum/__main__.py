from stratum.cli import main

if __name__ == "__main__":  # pragma: no cover - exercised via module entrypoint
    main()
