import sys

if __name__ == "__main__":
    try:
        from bitcoin_tui.app import run
    except ModuleNotFoundError as e:
        if e.name in {"textual", "rich", "requests"}:
            print(f"Missing dependency '{e.name}'. Install with: pip install -e .", file=sys.stderr)
            sys.exit(1)
        raise
    sys.exit(run())
