import argparse

import uvicorn

from dialectic.worker import main as worker_main


def serve():
    uvicorn.run(
        "dialectic.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True
    )


def main(argv=None):
    parser = argparse.ArgumentParser(prog="dialectic", description="Dialectic job worker and status API")
    parser.add_argument("command", choices=["serve", "worker"], nargs="?", default="serve")
    args = parser.parse_args(argv)

    if args.command == "worker":
        worker_main()
    else:
        serve()
