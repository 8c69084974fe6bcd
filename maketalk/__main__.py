from maketalk.cli.commands import app

app(prog_name="maketalk")
