"""CLI commands for running extension processing."""

from __future__ import annotations

import typing as t

from sqlalchemy.orm import Session

import gradepush.lib.cli as click
from gradepush.core import di, LoggingProvider, TimestampProvider
from gradepush.core.config import ExtensionSettings, QueueSettings
from gradepush.extension import rescan
from gradepush.extension.applier import ExtensionApplier
from gradepush.extension.errors import ScanAlreadyQueuedError
from gradepush.extension.processor import Processors, QueueProcessor
from gradepush.lib.vendor.sits import SITSClient
from gradepush.model import ExtensionScope, QueueName

if t.TYPE_CHECKING:
    from mypy_boto3_sqs import SQSClient  # pyright: ignore [reportMissingModuleSource]


QueueOption = click.EnumType(QueueName, extra=["all"])


def _queue_names(queue: QueueName | str) -> list[QueueName]:
    return [queue] if isinstance(queue, QueueName) else list(QueueName)


@click.group("extension")
def extension():
    """Process accommodations and extenuating circumstances."""
    ...


@extension.command("process-now")
@click.option("--course-id", type=int, default=0, help="Limit the re-scan to one course; 0 means every course")
@click.option("--type", "scope", type=click.EnumType(ExtensionScope), default=ExtensionScope.Both.value)
@di.inject
def process_now(
    course_id: int,
    scope: ExtensionScope,
    session: Session = di.Provide["storage.persistent.session"],
) -> None:
    """Queue a full re-scan of extension-enabled mappings."""
    try:
        with session.begin():
            task = rescan.queue_full_rescan(course_id, scope, session=session)
    except ScanAlreadyQueuedError as e:
        click.echo(f"Error: {e} (task {e.context['task_id']}).", err=True)
        raise SystemExit(1) from e

    click.echo(f"Queued re-scan: {task.task_id}")
    click.echo(f"  Course: {course_id or 'all'}")
    click.echo(f"  Type: {scope.value}")


@extension.command("run-queue")
@click.option("--queue", "-q", type=QueueOption, default="all")
@di.inject
def run_queue(
    queue: QueueName | str,
    session: Session = di.Provide["storage.persistent.session"],
    sqs: SQSClient = di.Provide["vendor.aws.sqs"],
    sits: SITSClient = di.Provide["vendor.sits.client"],
    settings: ExtensionSettings = di.Provide["extension.settings"],
    queue_settings: QueueSettings = di.Provide["extension.queue_settings"],
    utcnow: TimestampProvider = di.Provide["utcnow"],
    logging: LoggingProvider = di.Provide["logging"],
) -> None:
    """Drain the accommodation and extenuating-circumstance queues."""
    logger = logging.get_logger()
    if not settings.enabled:
        logger.info("extension processing is disabled")
        return

    applier = ExtensionApplier(session, settings=settings, utcnow=utcnow)
    for name in _queue_names(queue):
        processor: QueueProcessor = Processors[name](
            session,
            sqs=sqs,
            sits=sits,
            settings=settings,
            queue_settings=queue_settings,
            utcnow=utcnow,
            applier=applier,
        )
        summary = processor.run()
        click.echo(
            f"{name.value}: {summary.processed} processed, {summary.ignored} ignored, "
            f"{summary.failed} failed, {summary.skipped} skipped in {summary.batches} batches"
        )


@extension.command("retry-failed")
@click.option("--queue", "-q", type=QueueOption, default="all")
@click.option("--message-id", "-m", default=None, help="Retry one message only")
@click.option("--limit", "-n", type=int, default=None)
@di.inject
def retry_failed(
    queue: QueueName | str,
    message_id: str | None,
    limit: int | None,
    session: Session = di.Provide["storage.persistent.session"],
    sqs: SQSClient = di.Provide["vendor.aws.sqs"],
    sits: SITSClient = di.Provide["vendor.sits.client"],
    settings: ExtensionSettings = di.Provide["extension.settings"],
    queue_settings: QueueSettings = di.Provide["extension.queue_settings"],
    utcnow: TimestampProvider = di.Provide["utcnow"],
) -> None:
    """Re-run messages recorded as failed from their stored payloads."""
    for name in _queue_names(queue):
        processor: QueueProcessor = Processors[name](
            session,
            sqs=sqs,
            sits=sits,
            settings=settings,
            queue_settings=queue_settings,
            utcnow=utcnow,
        )
        summary = processor.retry_failed(message_id=message_id, limit=limit)
        click.echo(f"{name.value}: {summary.processed} processed, {summary.failed} still failing")


@extension.command("run-tasks")
@click.option("--limit", "-n", type=int, default=None, help="Run at most this many pending tasks")
@di.inject
def run_tasks(
    limit: int | None,
    session: Session = di.Provide["storage.persistent.session"],
    sits: SITSClient = di.Provide["vendor.sits.client"],
    settings: ExtensionSettings = di.Provide["extension.settings"],
    utcnow: TimestampProvider = di.Provide["utcnow"],
) -> None:
    """Run queued re-scan, new-mapping and new-enrolment tasks."""
    applier = ExtensionApplier(session, settings=settings, utcnow=utcnow)
    tasks = rescan.RescanTasks(session, sits=sits, settings=settings, applier=applier)
    summary = rescan.run_pending_tasks(tasks, limit=limit)
    click.echo(f"{summary.complete} complete, {summary.failed} failed, {summary.requeued} continued")


@extension.command("enrol")
@click.argument("course_id", type=int)
@click.argument("user_id", type=int)
@click.option("--role", "-r", default="student", help="Course role the user was enrolled with")
@di.inject
def enrol(
    course_id: int,
    user_id: int,
    role: str,
    session: Session = di.Provide["storage.persistent.session"],
    settings: ExtensionSettings = di.Provide["extension.settings"],
) -> None:
    """Record an enrolment so the student picks up existing extensions.

    COURSE_ID is the course the user joined.
    USER_ID is the local user id.
    """
    with session.begin():
        event = rescan.on_user_enrolled(course_id, user_id, role, settings=settings, session=session)
    if event is None:
        click.echo(f"Role '{role}' does not take extensions, nothing queued.")
        return
    click.echo(f"Queued enrolment of user {user_id} in course {course_id}")
