from pegkeeper.cli import cli

cli()
