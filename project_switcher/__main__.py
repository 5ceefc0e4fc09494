from project_switcher.cli import cli

cli()
