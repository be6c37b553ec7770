from tasklog.cli import app

app(prog_name="tasklog")
