# repo root on sys.path so tests can import src.* and cli
