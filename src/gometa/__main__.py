from gometa.cli import app

app()
