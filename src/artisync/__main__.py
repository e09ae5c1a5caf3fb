from artisync.main import cli

cli()
