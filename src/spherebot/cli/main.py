# spherebot/cli/main.py
import argparse

from spherebot.cli import db, logging as logging_cli, slack


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="spherebot", description="Slack relay for AnythingLLM")
    subparsers = parser.add_subparsers(dest="command", required=True)

    slack_parser = subparsers.add_parser("slack", help="Run the Slack bot")
    slack_subparsers = slack_parser.add_subparsers(dest="subcommand", required=True)
    slack.register_subcommands(slack_subparsers)

    db_parser = subparsers.add_parser("db", help="Mapping store operations")
    db_subparsers = db_parser.add_subparsers(dest="subcommand", required=True)
    db.register_subcommands(db_subparsers)

    logging_parser = subparsers.add_parser("logging", help="Logging utilities")
    logging_subparsers = logging_parser.add_subparsers(dest="subcommand", required=True)
    logging_cli.register_subcommands(logging_subparsers)

    return parser


_DISPATCH = {
    "slack": slack.dispatch,
    "db": db.dispatch,
    "logging": logging_cli.dispatch,
}


def main(argv=None):
    args = build_parser().parse_args(argv)
    _DISPATCH[args.command](args)


if __name__ == "__main__":
    main()
