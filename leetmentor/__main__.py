from leetmentor.cli import run

run()
