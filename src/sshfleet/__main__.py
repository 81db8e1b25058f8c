"""Module entrypoint for `python -m sshfleet`."""

from sshfleet.cli import run

if __name__ == "__main__":
    raise SystemExit(run())
