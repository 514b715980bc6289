from episode_graph.cli.main import app

app()
