"""Apply and revert extension overrides on activities, keeping the override ledger in step.

Every override this module writes is recorded in `extension_overrides` so it
can be reverted: per user for extenuating circumstances and for activity types
without groups, per accommodation group otherwise.
"""

from __future__ import annotations

import typing as t

from sqlalchemy.orm import Session

import gradepush.storage.group as group_store
import gradepush.storage.mapping as mapping_store
import gradepush.storage.override as override_store
from gradepush.activity import ActivityStore, get_store, registered_types
from gradepush.core.config import ExtensionSettings
from gradepush.core.provider import LoggingProvider, TimestampProvider
from gradepush.model import ActivityOverride, ExtensionDirective, ExtensionFamily, ExtenuatingCircumstanceGrant, \
    MappingWithComponent, OverrideRecord, OverrideRecordID, Schedule, StudentRecord

from . import deadline, normalizer

logger = LoggingProvider.get_logger()


class RosterResult(t.NamedTuple):
    applied: int = 0
    skipped: int = 0
    failed: int = 0


class ExtensionApplier(object):
    def __init__(
        self,
        session: Session,
        *,
        settings: ExtensionSettings,
        utcnow: TimestampProvider,
        actor: str = "gradepush",
    ):
        self.session = session
        self.settings = settings
        self.utcnow = utcnow
        self.actor = actor
        self.calendar = deadline.Calendar(settings.tzinfo, settings.closure_days)

    def store_for(self, mapping: MappingWithComponent) -> ActivityStore:
        return get_store(mapping.activity_type, self.session)

    def is_eligible(self, mapping: MappingWithComponent, family: ExtensionFamily) -> bool:
        """Whether a mapping may take new extensions of a family at all; does not look at the activity."""
        if not self.settings.enabled or not mapping.enable_extension or mapping.is_removed:
            return False
        if mapping.activity_type not in self.settings.supported_activity_types & registered_types():
            return False
        if family is ExtensionFamily.RAA:
            return self.settings.is_ast_code_eligible(mapping.component.ast_code)
        return True

    def is_open(self, schedule: Schedule) -> bool:
        """An extension only makes sense while the activity has not closed."""
        return schedule.close_time is not None and schedule.close_time > self.utcnow()

    def _context(self, mapping: MappingWithComponent, **extra: t.Any) -> dict[str, t.Any]:
        return {
            "mapping_id": mapping.mapping_id,
            "course_id": mapping.course_id,
            "activity_type": mapping.activity_type.value,
            "activity_id": mapping.activity_id,
            **extra,
        }

    # extenuating circumstances

    def apply_ec(
        self, mapping: MappingWithComponent, user_id: int, grant: ExtenuatingCircumstanceGrant
    ) -> OverrideRecord | None:
        """Move the user's deadline to the granted date, keeping the original time of day.

        A grant without a date withdraws any EC the user holds on the mapping.
        """
        ctx = self._context(mapping, user_id=user_id, student_code=grant.student_code)
        if grant.new_deadline is None:
            self.withdraw_ec(mapping, user_id)
            return None
        if not self.is_eligible(mapping, ExtensionFamily.EC):
            logger.warning("mapping is not eligible for extensions, skipping", extra=ctx)
            return None
        if mapping.reassessment:
            logger.debug("extenuating circumstances do not apply to reassessments", extra=ctx)
            return None

        store = self.store_for(mapping)
        if not store.is_participant(mapping.activity_id, user_id, self.settings.gradebook_roles):
            logger.debug("user is not a participant of the activity", extra=ctx)
            return None

        schedule = store.get_current_schedule(mapping.activity_id)
        if not self.is_open(schedule):
            logger.info("activity has closed, no extension applied", extra=ctx)
            return None
        assert schedule.close_time is not None

        close = self.calendar.combine(grant.new_deadline, schedule.close_time)
        existing = store.get_override(mapping.activity_id, user_id=user_id)
        active = override_store.get_active(
            mapping.mapping_id, ExtensionFamily.EC, user_id=user_id, session=self.session
        )

        # the user's other override fields survive; only the deadline changes
        target = (existing.schedule if existing else Schedule()).model_copy(update={"close_time": close})
        override_id = store.write_user_override(mapping.activity_id, user_id, target)
        record = self._record(
            mapping,
            ExtensionFamily.EC,
            active=active,
            override_id=override_id,
            original=store.snapshot(existing) if existing and active is None else None,
            stacked_on=self._top_of_stack(mapping.activity_id, user_id, existing) if active is None else None,
            source_id=grant.source_id,
            user_id=user_id,
        )
        logger.info("applied extenuating circumstance", extra={**ctx, "close_time": close.isoformat()})
        return record

    def withdraw_ec(self, mapping: MappingWithComponent, user_id: int, *, source_id: str | None = None) -> bool:
        """Revert the user's active EC override on the mapping.

        With `source_id`, only an override placed for that request is reverted.
        Withdrawing something never applied is a no-op.
        """
        ctx = self._context(mapping, user_id=user_id, source_id=source_id)
        active = override_store.get_active(
            mapping.mapping_id, ExtensionFamily.EC, user_id=user_id, session=self.session
        )
        if active is None:
            logger.info("no active extenuating circumstance to withdraw", extra=ctx)
            return False
        if source_id is not None and active.source_id != source_id:
            logger.info(
                "active extenuating circumstance belongs to another request", extra={**ctx, "active": active.source_id}
            )
            return False
        self._restore_user_override(self.store_for(mapping), active)
        logger.info("withdrew extenuating circumstance", extra=ctx)
        return True

    # accommodations

    def apply_raa(
        self,
        mapping: MappingWithComponent,
        user_id: int,
        directive: ExtensionDirective | None,
        *,
        source_id: str | None = None,
    ) -> OverrideRecord | None:
        """Give the user the accommodation on the mapping's activity, or withdraw it when `directive` is None."""
        ctx = self._context(mapping, user_id=user_id)
        if directive is None:
            self.withdraw_raa(mapping, user_id)
            return None
        if not self.is_eligible(mapping, ExtensionFamily.RAA):
            logger.warning("mapping is not eligible for accommodations, skipping", extra=ctx)
            return None

        store = self.store_for(mapping)
        schedule = store.get_current_schedule(mapping.activity_id)
        if not self.is_open(schedule):
            logger.info("activity has closed, no accommodation applied", extra=ctx)
            return None

        if store.supports_group_overrides:
            return self._apply_raa_group(store, mapping, user_id, directive, schedule, source_id=source_id)
        return self._apply_raa_user(store, mapping, user_id, directive, schedule, source_id=source_id)

    def _deadline_group_base(
        self, store: ActivityStore, activity_id: int, user_id: int, schedule: Schedule
    ) -> tuple[Schedule | None, bool]:
        """The schedule accommodations are computed from when the activity uses deadline groups.

        Returns (schedule, True) for a member of a deadline group, (None, True)
        for a non-member, and (schedule, False) when deadline groups are not in use.
        """
        prefix = self.settings.deadline_group_prefix
        if not prefix or not store.find_group_overrides(activity_id, name_prefix=prefix):
            return schedule, False
        mine = store.find_group_overrides(activity_id, name_prefix=prefix, member_user_id=user_id)
        if not mine:
            return None, True
        return mine[0].schedule.merged(schedule), True

    def _apply_raa_group(
        self,
        store: ActivityStore,
        mapping: MappingWithComponent,
        user_id: int,
        directive: ExtensionDirective,
        schedule: Schedule,
        *,
        source_id: str | None,
    ) -> OverrideRecord | None:
        ctx = self._context(mapping, user_id=user_id, kind=directive.kind.value, magnitude=directive.magnitude)
        base, from_deadline_group = self._deadline_group_base(store, mapping.activity_id, user_id, schedule)
        if base is None:
            logger.info("activity uses deadline groups and the user is in none, skipping", extra=ctx)
            return None

        extended = deadline.extend(base, directive, time_limited=store.time_limited, calendar=self.calendar)
        name = deadline.group_name(
            mapping.activity_id,
            extended.seconds,
            due=extended.schedule.close_time if from_deadline_group else None,
            calendar=self.calendar,
        )
        group = group_store.get_or_create(course_id=mapping.course_id, name=name, session=self.session)
        group_store.add_member(group.group_id, user_id, session=self.session)
        self._leave_other_groups(store, mapping.activity_id, user_id, keep=group.group_id)

        target = Schedule(
            open_time=base.open_time if from_deadline_group else None,
            close_time=extended.schedule.close_time,
            time_limit=(
                extended.schedule.time_limit
                if from_deadline_group or extended.schedule.time_limit != base.time_limit
                else None
            ),
        )
        override_id = store.write_group_override(mapping.activity_id, group.group_id, target)
        active = override_store.get_active(
            mapping.mapping_id, ExtensionFamily.RAA, group_id=group.group_id, session=self.session
        )
        record = self._record(
            mapping,
            ExtensionFamily.RAA,
            active=active,
            override_id=override_id,
            source_id=source_id,
            group_id=group.group_id,
        )
        logger.info("applied accommodation", extra={**ctx, "group": name, "seconds": extended.seconds})
        return record

    def _apply_raa_user(
        self,
        store: ActivityStore,
        mapping: MappingWithComponent,
        user_id: int,
        directive: ExtensionDirective,
        schedule: Schedule,
        *,
        source_id: str | None,
    ) -> OverrideRecord:
        ctx = self._context(mapping, user_id=user_id, kind=directive.kind.value, magnitude=directive.magnitude)
        extended = deadline.extend(schedule, directive, time_limited=store.time_limited, calendar=self.calendar)
        existing = store.get_override(mapping.activity_id, user_id=user_id)
        active = override_store.get_active(
            mapping.mapping_id, ExtensionFamily.RAA, user_id=user_id, session=self.session
        )

        target = (existing.schedule if existing else Schedule()).model_copy(
            update={"close_time": extended.schedule.close_time}
        )
        override_id = store.write_user_override(mapping.activity_id, user_id, target)
        record = self._record(
            mapping,
            ExtensionFamily.RAA,
            active=active,
            override_id=override_id,
            original=store.snapshot(existing) if existing and active is None else None,
            stacked_on=self._top_of_stack(mapping.activity_id, user_id, existing) if active is None else None,
            source_id=source_id,
            user_id=user_id,
        )
        logger.info("applied accommodation", extra={**ctx, "seconds": extended.seconds})
        return record

    def withdraw_raa(self, mapping: MappingWithComponent, user_id: int) -> int:
        """Take the user out of the activity's accommodation groups, or revert their own override.

        Returns how many overrides were affected.
        """
        ctx = self._context(mapping, user_id=user_id)
        store = self.store_for(mapping)
        if store.supports_group_overrides:
            n = self._leave_other_groups(store, mapping.activity_id, user_id)
        else:
            active = override_store.get_active(
                mapping.mapping_id, ExtensionFamily.RAA, user_id=user_id, session=self.session
            )
            n = 0
            if active is not None:
                self._restore_user_override(store, active)
                n = 1
        if n:
            logger.info("withdrew accommodation", extra={**ctx, "overrides": n})
        else:
            logger.info("no accommodation to withdraw", extra=ctx)
        return n

    def _leave_other_groups(
        self, store: ActivityStore, activity_id: int, user_id: int, *, keep: int | None = None
    ) -> int:
        """Remove the user from the activity's accommodation groups, other than `keep`."""
        n = 0
        prefix = deadline.group_prefix(activity_id)
        for override in store.find_group_overrides(activity_id, name_prefix=prefix, member_user_id=user_id):
            assert override.group_id is not None
            if override.group_id == keep:
                continue
            group_store.remove_member(override.group_id, user_id, session=self.session)
            if not group_store.members(override.group_id, session=self.session):
                self._drop_group(store, override)
            n += 1
        return n

    def _drop_group(self, store: ActivityStore, override: ActivityOverride) -> None:
        assert override.group_id is not None
        store.delete_override(override.activity_override_id)
        for record in override_store.find(
            group_id=override.group_id, family=ExtensionFamily.RAA, session=self.session
        ):
            self._mark_restored(record)
        group_store.delete(override.group_id, session=self.session)

    # ledger

    def _record(
        self,
        mapping: MappingWithComponent,
        family: ExtensionFamily,
        *,
        active: OverrideRecord | None,
        override_id: int,
        source_id: str | None,
        original: dict[str, t.Any] | None = None,
        stacked_on: OverrideRecordID | None = None,
        user_id: int | None = None,
        group_id: int | None = None,
    ) -> OverrideRecord:
        """Create the ledger row, or update the active one in place keeping its original snapshot."""
        if active is not None:
            override_store.update(
                active.override_record_id, override_id=override_id, source_id=source_id, session=self.session
            )
            record = override_store.get(active.override_record_id, session=self.session)
            assert record is not None
            return record
        return override_store.create(
            {
                "mapping_id": mapping.mapping_id,
                "activity_type": mapping.activity_type,
                "activity_id": mapping.activity_id,
                "family": family,
                "user_id": user_id,
                "group_id": group_id,
                "override_id": override_id,
                "original": original,
                "stacked_on": stacked_on,
                "source_id": source_id,
                "created_by": self.actor,
            },
            session=self.session,
        )

    def _mark_restored(self, record: OverrideRecord) -> None:
        override_store.mark_restored(
            record.override_record_id, restored_by=self.actor, restore_time=self.utcnow(), session=self.session
        )

    def _top_of_stack(
        self, activity_id: int, user_id: int, existing: ActivityOverride | None
    ) -> OverrideRecordID | None:
        """The active row that last wrote the user's existing override, if one of ours did."""
        if existing is None:
            return None
        owners = [
            r
            for r in override_store.find(activity_id=activity_id, user_id=user_id, session=self.session)
            if r.override_id == existing.activity_override_id
        ]
        beneath = {r.stacked_on for r in owners}
        for record in owners:
            if record.override_record_id not in beneath:
                return record.override_record_id
        return None

    def _restore_user_override(self, store: ActivityStore, record: OverrideRecord) -> None:
        """Put the user's override back the way it was before we wrote it.

        When another active row was written over ours, the override is left as
        it is and that row takes over what ours would have restored.
        """
        assert record.user_id is not None
        above = override_store.find(stacked_on=record.override_record_id, session=self.session)
        if above:
            for other in above:
                override_store.update(
                    other.override_record_id,
                    original=record.original,
                    stacked_on=record.stacked_on,
                    session=self.session,
                )
            self._mark_restored(record)
            return

        current = store.get_override_by_id(record.override_id) if record.override_id is not None else None
        # a missing override was removed by hand; there is nothing left to revert
        if current is not None:
            if record.original:
                store.restore(record.activity_id, record.original, user_id=record.user_id)
            else:
                store.delete_override(current.activity_override_id)
        self._mark_restored(record)

    # mapping lifecycle

    def reverse_mapping(self, mapping: MappingWithComponent) -> int:
        """Revert every active override the mapping owns, of both families."""
        store = self.store_for(mapping)
        records = override_store.find(mapping_id=mapping.mapping_id, session=self.session)
        for record in records:
            if record.user_id is not None:
                # restoring a row beneath this one may have rewritten it
                current = override_store.get(record.override_record_id, session=self.session)
                assert current is not None
                self._restore_user_override(store, current)
                continue

            assert record.group_id is not None
            shared = [
                r
                for r in override_store.find(group_id=record.group_id, family=record.family, session=self.session)
                if r.mapping_id != mapping.mapping_id
            ]
            override = store.get_override(record.activity_id, group_id=record.group_id)
            if shared or override is None:
                self._mark_restored(record)
            else:
                self._drop_group(store, override)
        return len(records)

    def remove_mapping(self, mapping: MappingWithComponent, *, purge: bool = False) -> int:
        """Reverse the mapping's overrides, then soft-delete it, or delete it and its ledger with `purge`."""
        ctx = self._context(mapping, purge=purge)
        n = self.reverse_mapping(mapping)
        if purge:
            override_store.delete_for_mapping(mapping.mapping_id, session=self.session)
            mapping_store.delete(mapping.mapping_id, session=self.session)
        else:
            mapping_store.update(mapping.mapping_id, removed_time=self.utcnow(), session=self.session)
        logger.info("removed mapping", extra={**ctx, "reversed": n})
        return n

    # rosters

    def update_raa_for_mapping(
        self, mapping: MappingWithComponent, students: t.Iterable[StudentRecord]
    ) -> RosterResult:
        """Bring every listed student's accommodation on the mapping in line with their snapshot."""
        return self._each_student(mapping, ExtensionFamily.RAA, students, self._apply_raa_snapshot)

    def update_ec_for_mapping(self, mapping: MappingWithComponent, students: t.Iterable[StudentRecord]) -> RosterResult:
        return self._each_student(mapping, ExtensionFamily.EC, students, self._apply_ec_snapshot)

    def _apply_raa_snapshot(self, mapping: MappingWithComponent, student: StudentRecord) -> bool:
        assert student.user_id is not None
        update = normalizer.parse_raa_snapshot(student)
        return self.apply_raa(mapping, student.user_id, update.directive) is not None

    def _apply_ec_snapshot(self, mapping: MappingWithComponent, student: StudentRecord) -> bool:
        assert student.user_id is not None
        grant = normalizer.parse_ec_snapshot(student, mapping.component.identifier)
        return self.apply_ec(mapping, student.user_id, grant) is not None

    def _each_student(
        self,
        mapping: MappingWithComponent,
        family: ExtensionFamily,
        students: t.Iterable[StudentRecord],
        fn: t.Callable[[MappingWithComponent, StudentRecord], bool],
    ) -> RosterResult:
        ctx = self._context(mapping, family=family.value)
        if not self.is_eligible(mapping, family):
            logger.info("mapping is not eligible, roster skipped", extra=ctx)
            return RosterResult()

        applied = skipped = failed = 0
        for student in students:
            if student.user_id is None:
                skipped += 1
                continue
            try:
                with self.session.begin_nested():
                    if fn(mapping, student):
                        applied += 1
                    else:
                        skipped += 1
            except Exception:
                failed += 1
                logger.exception(
                    "failed to update student extension",
                    extra={**ctx, "student_code": student.student_code, "user_id": student.user_id},
                )
        result = RosterResult(applied=applied, skipped=skipped, failed=failed)
        logger.info("updated roster extensions", extra={**ctx, **result._asdict()})
        return result
