from cloudbuilder.cli import cli

cli()
