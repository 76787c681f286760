# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import logging
import sys
from time import perf_counter

import click

from smt_session.backend import SolverConfiguration
from smt_session.commands import CommandDispatcher
from smt_session.errors import SmtSessionError
from smt_session.session import SessionState
from smt_session.sexpr import read_sexprs

logger = logging.getLogger(__name__)


def _parse_option(ctx, param, values):
    options = []
    for value in values:
        key, sep, option_value = value.partition("=")
        if not sep or not key or not option_value:
            raise click.BadParameter(f"Expected KEY=VALUE, got '{value}'")
        if not key.startswith(":"):
            key = ":" + key
        options.append((key, option_value))
    return options


def _error_message(e: Exception) -> str:
    return '(error "' + str(e).replace('"', '""') + '")'


@click.command(context_settings=dict(max_content_width=800))
@click.argument(
    "input-file",
    required=True,
    type=click.Path(exists=True, dir_okay=False, resolve_path=True),
)
@click.option(
    "--solver",
    required=False,
    type=str,
    default="z3",
    help="Name of the pySMT solver used as backend (default: z3)",
)
@click.option(
    "--option",
    "options",
    required=False,
    multiple=True,
    callback=_parse_option,
    help="SMT-LIB option applied before the script runs, as KEY=VALUE (e.g. produce-unsat-cores=true)",
)
@click.option(
    "--log",
    type=click.Choice(
        ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        case_sensitive=False,
    ),
    default="WARNING",
    help="Logging level (default: WARNING)",
)
@click.option(
    "--log-file",
    type=click.Path(exists=False),
    required=False,
    help="Log file. Logs are printed to stderr by default",
)
def cli(input_file, solver, options, log, log_file):
    """Runs the SMT-LIB2 script INPUT_FILE and prints the command results"""
    numeric_level = getattr(logging, log.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError("Invalid log level: %s" % log)

    # initialize log file
    if log_file:
        logging.basicConfig(
            filename=log_file,
            filemode="w",
            format="%(levelname)s - %(asctime)s: %(message)s",
            level=numeric_level,
        )
    else:
        logging.basicConfig(
            format="%(levelname)s - %(asctime)s: %(message)s",
            level=numeric_level,
        )

    start_time = perf_counter()
    try:
        configuration = SolverConfiguration(solver)
        for key, value in options:
            configuration.set_option(key, value)

        session = SessionState(configuration)
        dispatcher = CommandDispatcher(session, sys.stdout)
        with open(input_file, "r") as f:
            dispatcher.run(read_sexprs(f))
    except SmtSessionError as e:
        logger.debug("Execution stopped by %s", e.__class__.__name__)
        click.echo(_error_message(e))
        sys.exit(1)
    except Exception as e:
        logger.exception(e)
        click.echo(_error_message(f"internal error: {e}"))
        click.echo("if possible, re-execute with `--log=DEBUG --log-file=forbugreport.txt`", err=True)
        sys.exit(2)

    logger.info("Script %s processed in %.3f seconds", input_file, perf_counter() - start_time)


if __name__ == "__main__":
    cli()
