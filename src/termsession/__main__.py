"""Module entrypoint for `python -m termsession`."""

try:
    from .cli import run
except ImportError:
    from termsession.cli import run


if __name__ == "__main__":
    raise SystemExit(run())
