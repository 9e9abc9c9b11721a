"""CLI commands for managing assessment mappings."""

from __future__ import annotations

from sqlalchemy.orm import Session

import gradepush.lib.cli as click
import gradepush.storage.component as component_store
import gradepush.storage.mapping as mapping_store
from gradepush.core import di, TimestampProvider
from gradepush.core.config import ExtensionSettings
from gradepush.extension import rescan
from gradepush.extension.applier import ExtensionApplier
from gradepush.model import ActivityType, MappingWithComponent


def _describe(mapping: MappingWithComponent) -> str:
    flags = []
    if mapping.enable_extension:
        flags.append("extensions")
    if mapping.reassessment:
        flags.append("reassessment")
    if mapping.is_removed:
        flags.append("removed")
    return (
        f"{mapping.mapping_id:>6}  course {mapping.course_id:<6} {mapping.activity_type.value}:{mapping.activity_id:<8}"
        f" {mapping.component.identifier:<20} {','.join(flags)}"
    )


def _get_mapping(mapping_id: int, session: Session) -> MappingWithComponent:
    mapping = mapping_store.get(mapping_id, session=session)
    if mapping is None:
        click.echo(f"Error: Mapping {mapping_id} not found.", err=True)
        raise SystemExit(1)
    return mapping


@click.group("mapping")
def mapping():
    """Manage links between course activities and assessment components."""
    ...


@mapping.command("list")
@click.option("--course-id", type=int, default=None)
@click.option("--all", "include_removed", is_flag=True, default=False, help="Include removed mappings")
@di.inject
def mapping_list(
    course_id: int | None,
    include_removed: bool,
    session: Session = di.Provide["storage.persistent.session"],
) -> None:
    with session.begin():
        mappings = mapping_store.find(course_id=course_id, include_removed=include_removed, session=session)
    for m in mappings:
        click.echo(_describe(m))


@mapping.command("add")
@click.argument("course_id", type=int)
@click.argument("activity_type", type=click.EnumType(ActivityType))
@click.argument("activity_id", type=int)
@click.argument("component", type=click.ComponentIdentifierType())
@click.option("--extensions/--no-extensions", "enable_extension", default=False)
@click.option("--reassessment", is_flag=True, default=False)
@di.inject
def mapping_add(
    course_id: int,
    activity_type: ActivityType,
    activity_id: int,
    component: str,
    enable_extension: bool,
    reassessment: bool,
    session: Session = di.Provide["storage.persistent.session"],
    settings: ExtensionSettings = di.Provide["extension.settings"],
) -> None:
    """Map an activity to an assessment component.

    COMPONENT is the component identifier, e.g. LAWS0024A6UF-001.
    """
    with session.begin():
        grade = component_store.get_by_identifier(component, session=session)
        if grade is None:
            click.echo(f"Error: Component '{component}' not found.", err=True)
            raise SystemExit(1)

        created = mapping_store.create(
            course_id=course_id,
            activity_type=activity_type,
            activity_id=activity_id,
            component_grade_id=grade.component_grade_id,
            enable_extension=enable_extension,
            reassessment=reassessment,
            session=session,
        )
        rescan.on_mapping_created(created, settings=settings, session=session)

    click.echo(f"Created mapping: {created.mapping_id}")
    click.echo(_describe(created))


@mapping.command("toggle-extension")
@click.argument("mapping_id", type=int)
@click.option("--on/--off", "enabled", required=True)
@di.inject
def mapping_toggle_extension(
    mapping_id: int,
    enabled: bool,
    session: Session = di.Provide["storage.persistent.session"],
    settings: ExtensionSettings = di.Provide["extension.settings"],
    utcnow: TimestampProvider = di.Provide["utcnow"],
) -> None:
    """Switch extension processing for a mapping on or off.

    Switching off puts back every deadline the mapping changed.
    """
    with session.begin():
        found = _get_mapping(mapping_id, session)
        rescan.on_extension_toggled(found, enabled, settings=settings, session=session)
        if not enabled and found.enable_extension:
            reverted = ExtensionApplier(session, settings=settings, utcnow=utcnow).reverse_mapping(found)
            click.echo(f"Reverted {reverted} overrides")
        mapping_store.update(mapping_id, enable_extension=enabled, session=session)

    click.echo(f"Mapping {mapping_id}: extensions {'on' if enabled else 'off'}")


@mapping.command("remove")
@click.argument("mapping_id", type=int)
@click.option("--purge", is_flag=True, default=False, help="Delete the mapping row instead of marking it removed")
@di.inject
def mapping_remove(
    mapping_id: int,
    purge: bool,
    session: Session = di.Provide["storage.persistent.session"],
    settings: ExtensionSettings = di.Provide["extension.settings"],
    utcnow: TimestampProvider = di.Provide["utcnow"],
) -> None:
    """Remove a mapping, reverting the overrides it created."""
    with session.begin():
        found = _get_mapping(mapping_id, session)
        reverted = ExtensionApplier(session, settings=settings, utcnow=utcnow).remove_mapping(found, purge=purge)

    click.echo(f"Removed mapping {mapping_id} ({'purged' if purge else 'marked removed'})")
    click.echo(f"  Reverted overrides: {reverted}")
