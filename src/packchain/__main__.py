from packchain.cli import cli

cli()
