from __future__ import annotations

import alembic.command
import alembic.config

import gradepush.lib.cli as click
from gradepush.core import di

AlembicConfig = "storage.persistent.alembic_config"


@click.group("schema")
def schema():
    """Migrate the gradepush database."""
    ...


@schema.command()
@click.option("--verbose", "-v", is_flag=True, default=False)
@di.inject
def current(verbose: bool, alembic_conf: alembic.config.Config = di.Provide[AlembicConfig]):
    alembic.command.current(alembic_conf, verbose=verbose)


@schema.command()
@click.argument("message")
@click.option("--autogenerate/--empty", default=True, help="diff the table metadata against the database")
@di.inject
def generate(message: str, autogenerate: bool, alembic_conf: alembic.config.Config = di.Provide[AlembicConfig]):
    alembic.command.revision(alembic_conf, message, autogenerate=autogenerate)


@schema.command()
@click.argument("revision", default="head")
@di.inject
def up(revision: str, alembic_conf: alembic.config.Config = di.Provide[AlembicConfig]):
    alembic.command.upgrade(alembic_conf, revision)


@schema.command()
@click.argument("revision")
@di.inject
def down(revision: str, alembic_conf: alembic.config.Config = di.Provide[AlembicConfig]):
    """Downgrade to REVISION, e.g. -1 for one step back."""
    alembic.command.downgrade(alembic_conf, revision)


@schema.command()
@click.option("--verbose", "-v", is_flag=True, default=False)
@di.inject
def history(verbose: bool, alembic_conf: alembic.config.Config = di.Provide[AlembicConfig]):
    alembic.command.history(alembic_conf, verbose=verbose, indicate_current=True)


@schema.command()
@click.argument("revision")
@di.inject
def stamp(revision: str, alembic_conf: alembic.config.Config = di.Provide[AlembicConfig]):
    alembic.command.stamp(alembic_conf, revision)
