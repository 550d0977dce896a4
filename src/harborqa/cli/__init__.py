"""HarborQA command line interface."""

from harborqa.cli.commands import cli


def main() -> None:
    """Main entry point for the harborqa CLI."""
    cli()


__all__ = ["cli", "main"]
