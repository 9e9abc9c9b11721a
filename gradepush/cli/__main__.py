from __future__ import annotations

import importlib
import pkgutil
import sys
import threading
import traceback
import types
import typing as t
from pathlib import Path

import pydantic as p

import gradepush
import gradepush.cli
import gradepush.lib.cli as click
from gradepush.core import di, GradePushContainer
from gradepush.extension.errors import ExtensionError
from gradepush.model import DeploymentEnvironment

_DefaultConfigRoot = Path(gradepush.__file__).resolve().parents[1] / "config"

# command modules loaded during parsing, wired into the container at boot
_loaded: dict[str, types.ModuleType] = {}
_booted = False


class GradePushCommands(click.Group):
    """Each module under gradepush.cli defines a group of the same name."""

    def list_commands(self, ctx: click.Context) -> list[str]:
        modules = pkgutil.iter_modules(gradepush.cli.__path__)
        return sorted(m.name for m in modules if not m.name.startswith("_"))

    def get_command(self, ctx: click.Context, cmd_name: str) -> click.Command | None:
        if cmd_name not in self.list_commands(ctx):
            return None
        if cmd_name not in _loaded:
            _loaded[cmd_name] = importlib.import_module(f"gradepush.cli.{cmd_name}")
        return getattr(_loaded[cmd_name], cmd_name)


@click.group(cls=GradePushCommands)
@click.option(
    "-E",
    "--env",
    envvar="GRADEPUSH_ENV",
    default=DeploymentEnvironment.Local.value,
    type=click.EnumType(DeploymentEnvironment),
)
@click.option(
    "-c",
    "--config-root",
    envvar="GRADEPUSH_CONFIG_ROOT",
    default=_DefaultConfigRoot,
    type=click.URIParamType(dir_ok=True),
)
@click.option("-s", "--secrets-path", default=None, type=click.URIParamType(), help="defaults to the config root")
@click.option("-o", "--override", multiple=True, help="override a setting, e.g. -o extension.api_attempts=3")
@click.option("-D", "--debug", is_flag=True, default=False, help="log warnings and print tracebacks")
@click.pass_obj
def main(
    ct: GradePushContainer,
    env: DeploymentEnvironment,
    config_root: p.FileUrl,
    secrets_path: p.AnyUrl | None,
    override: tuple[str, ...],
    debug: bool,
):
    global _booted
    GradePushContainer.boot(
        ct,
        debug=debug,
        env=env,
        config_root=config_root,
        secrets_path=secrets_path,
        override=override,
        wiring=tuple(_loaded.values()),
    )
    _booted = True


def _report(ex: Exception) -> None:
    click.echo(click.style("ERROR ", fg="red"), nl=False, err=True)
    click.echo(str(ex), err=True)
    if isinstance(ex, ExtensionError):
        for k, v in sorted(ex.context.items()):
            click.echo(f"  {k}: {v}", err=True)


def execute_command(*_args: str) -> None:
    threading.current_thread().name = "gradepush-main"
    prog, *args = _args or sys.argv
    container = GradePushContainer()

    code = 0
    try:
        with main.make_context(Path(prog).name, args=list(args)) as ctx:
            ctx.obj = container
            main.invoke(ctx)
    except (EOFError, KeyboardInterrupt, click.Abort):
        click.echo("Aborted!", err=True)
        code = 1
    except click.exceptions.Exit as e:
        code = e.exit_code
    except click.ClickException as e:
        e.show()
        code = e.exit_code
    except Exception as ex:
        _report(ex)
        if container.debug() or (not _booted and "-D" in args):
            traceback.print_exc()
        code = 2
    finally:
        container.shutdown_resources()
    sys.exit(code)


if __name__ == "__main__":
    execute_command(*sys.argv)
