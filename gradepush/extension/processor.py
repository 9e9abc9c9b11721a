"""Poll the accommodation and extenuating-circumstance queues and apply what they carry.

Each message is handled at most once: the processed-message ledger is checked
before acting, and the outcome is written to it before the message is deleted.
"""

from __future__ import annotations

import datetime
import logging
import time
import typing as t

from sqlalchemy.orm import Session

import gradepush.storage.mapping as mapping_store
import gradepush.storage.message as message_store
import gradepush.storage.override as override_store
import gradepush.storage.user as user_store
import gradepush.storage.withdrawal as withdrawal_store
from gradepush.core.config import ExtensionSettings, QueueSettings
from gradepush.core.provider import LoggingProvider, TimestampProvider
from gradepush.lib.vendor.sits import SITSClient
from gradepush.model import AccommodationProvisions, AccommodationStatusChange, BaseModel, Disposition, \
    ExtensionFamily, ExtensionUpdate, ExtensionWithdrawal, ExtenuatingCircumstanceGrant, MappingWithComponent, \
    MessageStatus, QueueMessage, QueueName

from . import normalizer, resolver
from .applier import ExtensionApplier
from .errors import MalformedEventError, StudentNotFoundError

if t.TYPE_CHECKING:
    from mypy_boto3_sqs import SQSClient  # pyright: ignore [reportMissingModuleSource]

logger = LoggingProvider.get_logger()


class RunSummary(BaseModel):
    batches: int = 0
    processed: int = 0
    ignored: int = 0
    failed: int = 0
    skipped: int = 0

    def count(self, status: MessageStatus | None) -> None:
        match status:
            case MessageStatus.Processed:
                self.processed += 1
            case MessageStatus.Ignored:
                self.ignored += 1
            case MessageStatus.Failed:
                self.failed += 1
            case None:
                self.skipped += 1

    @property
    def handled(self) -> int:
        return self.processed + self.ignored + self.failed


class QueueProcessor(object):
    queue_name: t.ClassVar[QueueName]

    def __init__(
        self,
        session: Session,
        *,
        sqs: SQSClient,
        sits: SITSClient,
        settings: ExtensionSettings,
        queue_settings: QueueSettings,
        utcnow: TimestampProvider,
        applier: ExtensionApplier | None = None,
    ):
        self.session = session
        self.sqs = sqs
        self.sits = sits
        self.settings = settings
        self.queue_settings = queue_settings
        self.utcnow = utcnow
        self.applier = applier or ExtensionApplier(session, settings=settings, utcnow=utcnow)

    @property
    def queue_url(self) -> str:
        endpoint = getattr(self.queue_settings, self.queue_name.value)
        if endpoint.url is None:
            raise ValueError(f"no url configured for the {self.queue_name.value} queue")
        return str(endpoint.url)

    def receive(self) -> list[QueueMessage]:
        response = self.sqs.receive_message(
            QueueUrl=self.queue_url,
            MaxNumberOfMessages=self.queue_settings.max_messages,
            VisibilityTimeout=self.queue_settings.visibility_timeout,
            WaitTimeSeconds=self.queue_settings.wait_time_seconds,
        )
        return [
            QueueMessage(message_id=m["MessageId"], receipt_handle=m["ReceiptHandle"], body=m["Body"])
            for m in response.get("Messages", [])
        ]

    def delete(self, message: QueueMessage) -> None:
        self.sqs.delete_message(QueueUrl=self.queue_url, ReceiptHandle=message.receipt_handle)

    def run(self) -> RunSummary:
        """Drain the queue in batches until it is empty or a safety limit is reached."""
        qs = self.queue_settings
        summary = RunSummary()
        started = time.monotonic()
        ctx: dict[str, t.Any] = {"queue_name": self.queue_name.value}

        while True:
            if summary.batches >= qs.max_batches:
                logger.info("maximum batch limit reached", extra={**ctx, "limit": qs.max_batches})
                break
            if summary.handled >= qs.max_messages_to_process:
                logger.info("maximum message limit reached", extra={**ctx, "limit": qs.max_messages_to_process})
                break
            if time.monotonic() - started >= qs.max_execution_time:
                logger.info("maximum execution time reached", extra={**ctx, "limit": qs.max_execution_time})
                break

            messages = self.receive()
            if not messages:
                break
            summary.batches += 1
            logger.debug("processing batch", extra={**ctx, "batch": summary.batches, "messages": len(messages)})
            for message in messages:
                summary.count(self.handle(message))

        logger.info(
            "queue run complete",
            extra={**ctx, **summary.model_dump(), "seconds": round(time.monotonic() - started, 2)},
        )
        return summary

    def should_skip(self, message: QueueMessage, timestamp: datetime.datetime | None) -> bool:
        """Leave the message on the queue while its processing delay has not passed."""
        delay = self.queue_settings.delay_seconds
        if not delay or timestamp is None:
            return False
        return timestamp + datetime.timedelta(seconds=delay) > self.utcnow()

    def is_handled(self, message: QueueMessage) -> bool:
        with self.session.begin():
            record = message_store.get(message.message_id, self.queue_name, session=self.session)
        if record is None:
            return False
        return (
            record.status in (MessageStatus.Processed, MessageStatus.Ignored)
            or record.attempts >= self.queue_settings.max_attempts
        )

    def handle(self, message: QueueMessage) -> MessageStatus | None:
        """Process one message; None means it was left alone or already handled."""
        ctx: dict[str, t.Any] = {"message_id": message.message_id, "queue_name": self.queue_name.value}
        payload: dict[str, t.Any] | None = None
        logger.trace("received message", extra={**ctx, "body": message.body})
        try:
            envelope = normalizer.parse_envelope(message.body)
        except Exception as e:
            logger.exception("could not unwrap message", extra=ctx)
            status, error = MessageStatus.Failed, _describe(e)
        else:
            payload = envelope.message
            if self.should_skip(message, envelope.timestamp):
                logger.debug("message is still within its processing delay", extra=ctx)
                return None
            if self.is_handled(message):
                logger.info("message already handled, deleting", extra=ctx)
                self.delete(message)
                return None
            status, error = self.attempt(payload, ctx)

        # a failure to write the ledger propagates and the message stays on the queue
        with self.session.begin():
            message_store.save(
                message_id=message.message_id,
                queue_name=self.queue_name,
                status=status,
                payload=payload,
                body=message.body if payload is None else None,
                error=error,
                session=self.session,
            )
        self.delete(message)
        logger.log(
            logging.WARNING if status is MessageStatus.Failed else logging.INFO,
            "message %s",
            status.value,
            extra={**ctx, "status": status.value, "error": error},
        )
        return status

    def attempt(self, payload: dict[str, t.Any], ctx: dict[str, t.Any]) -> tuple[MessageStatus, str | None]:
        try:
            with self.session.begin():
                return self.process(payload), None
        except Exception as e:
            logger.exception("failed to process message", extra=ctx)
            return MessageStatus.Failed, _describe(e)

    def retry_failed(self, *, message_id: str | None = None, limit: int | None = None) -> RunSummary:
        """Run the stored payloads of failed messages through the handler again."""
        summary = RunSummary()
        with self.session.begin():
            records = message_store.find(
                queue_name=self.queue_name,
                status=MessageStatus.Failed,
                message_id=message_id,
                limit=limit,
                session=self.session,
            )

        for record in records:
            ctx: dict[str, t.Any] = {"message_id": record.message_id, "queue_name": self.queue_name.value}
            payload = record.payload
            if payload is None and record.body is not None:
                try:
                    payload = normalizer.parse_envelope(record.body).message
                except MalformedEventError as e:
                    logger.warning("stored body still cannot be unwrapped", extra={**ctx, "error": _describe(e)})
            if payload is None:
                logger.warning("failed message has no usable payload", extra=ctx)
                summary.count(None)
                continue
            status, error = self.attempt(payload, ctx)
            with self.session.begin():
                message_store.save(
                    message_id=record.message_id,
                    queue_name=self.queue_name,
                    status=status,
                    payload=payload,
                    error=error,
                    session=self.session,
                )
            summary.count(status)
        logger.info("retried failed messages", extra={"queue_name": self.queue_name.value, **summary.model_dump()})
        return summary

    def process(self, data: dict[str, t.Any]) -> MessageStatus:
        raise NotImplementedError()

    def for_each_mapping(
        self,
        mappings: t.Iterable[MappingWithComponent],
        fn: t.Callable[[MappingWithComponent], t.Any],
        **context: t.Any,
    ) -> int:
        """Run `fn` per mapping in its own savepoint; one mapping failing does not stop the rest."""
        failed = 0
        for mapping in mappings:
            try:
                with self.session.begin_nested():
                    fn(mapping)
            except Exception:
                failed += 1
                logger.exception(
                    "failed to apply extension to mapping",
                    extra={"mapping_id": mapping.mapping_id, "course_id": mapping.course_id, **context},
                )
        return failed


class RAAQueueProcessor(QueueProcessor):
    queue_name = QueueName.RAA

    def process(self, data: dict[str, t.Any]) -> MessageStatus:
        update = normalizer.parse_raa_event(data)
        ctx: dict[str, t.Any] = {"student_code": update.student_code, "update_type": update.update_type}
        if normalizer.classify(update, raa_type_codes=self.settings.raa_type_codes) is Disposition.Ignore:
            logger.info("accommodation event needs no action", extra=ctx)
            return MessageStatus.Ignored

        user = resolver.user_for_student(update.student_code, session=self.session)
        if user is None:
            logger.info("no local user for student", extra=ctx)
            return MessageStatus.Processed

        mappings = resolver.mappings_for_user(user.user_id, settings=self.settings, session=self.session)
        if not mappings:
            logger.info("student has no extension-enabled mappings", extra=ctx)
            return MessageStatus.Processed

        self.for_each_mapping(mappings, lambda m: self.apply(m, user.user_id, update), **ctx)
        return MessageStatus.Processed

    def apply(self, mapping: MappingWithComponent, user_id: int, update: ExtensionUpdate) -> None:
        match update:
            case AccommodationStatusChange(approved=True):
                students = self.sits.get_students(
                    mapping.component.map_code,
                    mapping.component.mab_seq,
                    fresh=True,
                    attempts=self.settings.api_attempts,
                    student_code=update.student_code,
                )
                students = tuple(s.model_copy(update={"user_id": user_id}) for s in students)
                self.applier.update_raa_for_mapping(mapping, students)
            case AccommodationStatusChange() | ExtensionWithdrawal():
                self.applier.withdraw_raa(mapping, user_id)
            case AccommodationProvisions(directive=None):
                self.applier.withdraw_raa(mapping, user_id)
            case AccommodationProvisions(directive=directive, ast_code=ast_code):
                if not self.settings.is_ast_code_eligible(ast_code):
                    logger.info(
                        "assessment type is not eligible for accommodations",
                        extra={"mapping_id": mapping.mapping_id, "user_id": user_id, "ast_code": ast_code},
                    )
                    return
                self.applier.apply_raa(mapping, user_id, directive, source_id=update.source_id)
            case _:
                raise TypeError(f"unexpected update on the accommodation queue: {update.update_type}")


class ECQueueProcessor(QueueProcessor):
    queue_name = QueueName.EC

    def process(self, data: dict[str, t.Any]) -> MessageStatus:
        update = normalizer.parse_ec_event(data)
        ctx: dict[str, t.Any] = {
            "student_code": update.student_code,
            "component": update.component_identifier,
            "source_id": update.source_id,
        }
        if normalizer.classify(update, raa_type_codes=self.settings.raa_type_codes) is Disposition.Ignore:
            logger.info("extenuating circumstance event needs no action", extra=ctx)
            return MessageStatus.Ignored

        if isinstance(update, ExtensionWithdrawal) and update.source_id is not None:
            # a grant for this request arriving later must not be applied
            withdrawal_store.record(update.source_id, ExtensionFamily.EC, session=self.session)

        student_code, component = update.student_code, update.component_identifier
        if normalizer.is_dap_deletion(update):
            traced = self.trace_request(update)
            if traced is None:
                logger.info("deleted request was never applied", extra=ctx)
                return MessageStatus.Processed
            student_code, component = traced

        assert component is not None
        user = resolver.user_for_student(student_code, session=self.session)
        if user is None:
            logger.info("no local user for student", extra=ctx)
            return MessageStatus.Processed

        mappings = resolver.mappings_for_component(component, settings=self.settings, session=self.session)
        if not mappings:
            logger.info("component has no extension-enabled mappings", extra=ctx)
            return MessageStatus.Processed

        if self.settings.ec_refresh_from_api:
            # the event may not carry the student's latest deadline across all of their requests
            map_code, mab_seq = resolver.split_identifier(component)
            students = self.sits.get_students(
                map_code, mab_seq, fresh=True, attempts=self.settings.api_attempts, student_code=student_code
            )
            if not students:
                raise StudentNotFoundError(
                    "student not found on component roster", student_code=student_code, component=component
                )
            grant = normalizer.parse_ec_snapshot(students[0], component)
            self.for_each_mapping(mappings, lambda m: self.applier.apply_ec(m, user.user_id, grant), **ctx)
        elif isinstance(update, ExtensionWithdrawal):
            self.for_each_mapping(
                mappings, lambda m: self.applier.withdraw_ec(m, user.user_id, source_id=update.source_id), **ctx
            )
        else:
            grant = t.cast(ExtenuatingCircumstanceGrant, update)
            if grant.source_id is not None and withdrawal_store.exists(
                grant.source_id, ExtensionFamily.EC, session=self.session
            ):
                logger.info("request was withdrawn before its grant arrived", extra=ctx)
                return MessageStatus.Processed
            self.for_each_mapping(mappings, lambda m: self.applier.apply_ec(m, user.user_id, grant), **ctx)
        return MessageStatus.Processed

    def trace_request(self, update: ExtensionUpdate) -> tuple[str, str] | None:
        """Find the student and component a deleted request was applied to, via the ledger."""
        records = override_store.find(source_id=update.source_id, family=ExtensionFamily.EC, session=self.session)
        for record in records:
            if record.user_id is None:
                continue
            user = user_store.get(record.user_id, session=self.session)
            mapping = mapping_store.get(record.mapping_id, session=self.session)
            if user is None or user.student_code is None or mapping is None:
                continue
            return user.student_code, mapping.component.identifier
        return None


Processors: dict[QueueName, type[QueueProcessor]] = {
    QueueName.RAA: RAAQueueProcessor,
    QueueName.EC: ECQueueProcessor,
}


def _describe(e: BaseException) -> str:
    return f"{type(e).__name__}: {e}"
