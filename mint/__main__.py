from mint.cli import app

app()
