"""
Absence Store

Namespaced collection of member absences. For any one member the stored
ranges never overlap: adding an absence evicts every overlapping absence
of that member.
"""

import csv
import io
import logging
from dataclasses import dataclass, field
from datetime import datetime, date, time
from typing import Iterable, Optional

from .calendar import DayLike, normalize_day, normalize_range, optional_day, overlap, round_half_up
from .errors import CapacityError, ImportRowError, InvalidDate
from .models import Absence, AbsenceType, TeamMember
from .roster import Roster
from .storage import Namespace, ABSENCES_KEY, CROSS_PROJECT


logger = logging.getLogger(__name__)

CSV_HEADER = ["username", "start", "end", "reason", "type", "created"]


@dataclass
class ImportResult:
    """Outcome of a best-effort CSV import."""
    imported: int = 0
    errors: list[ImportRowError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        return {
            "imported": self.imported,
            "errors": [e.to_dict() for e in self.errors],
        }


@dataclass
class MemberAbsenceStats:
    username: str
    absence_count: int = 0
    working_days_off: int = 0
    hours_lost: float = 0.0
    absences: list[Absence] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "absenceCount": self.absence_count,
            "workingDaysOff": self.working_days_off,
            "hoursLost": self.hours_lost,
            "absences": [a.to_dict() for a in self.absences],
        }


@dataclass
class TeamAbsenceStats:
    """Absence statistics for a team over a date range."""
    start_day: date
    end_day: date
    total_absences: int = 0
    total_days_off: int = 0
    total_hours_impact: float = 0.0
    by_member: dict[str, MemberAbsenceStats] = field(default_factory=dict)
    by_type: dict[str, int] = field(default_factory=lambda: {t.value: 0 for t in AbsenceType})

    def to_dict(self) -> dict:
        return {
            "range": {"start": self.start_day.isoformat(), "end": self.end_day.isoformat()},
            "totalAbsences": self.total_absences,
            "totalDaysOff": self.total_days_off,
            "totalHoursImpact": round_half_up(self.total_hours_impact, 1),
            "byMember": {name: stats.to_dict() for name, stats in self.by_member.items()},
            "byType": dict(self.by_type),
        }


def _clipped_working_days(absence: Absence, start: date, end: date) -> int:
    window = overlap(absence.start_day, absence.end_day, start, end)
    return window.working_days if window else 0


class AbsenceStore:
    """
    Absences for one namespace.

    Usage:
        store = AbsenceStore(namespace, roster)
        store.add("ada", "2025-03-10", "2025-03-12", "vacation", "Ski trip")
        store.for_user("ada", "2025-03-01", "2025-03-31")
    """

    def __init__(self, namespace: Namespace, roster: Optional[Roster] = None):
        self.namespace = namespace
        self.roster = roster

    # Persistence

    def _load(self) -> list[Absence]:
        absences = []
        for origin, blob in self.namespace.iter_blobs(ABSENCES_KEY):
            tag = origin if self.namespace.read_only else None
            absences.extend(Absence.from_dict(a, origin=tag) for a in blob.get("absences", []))
        return absences

    def _save(self, absences: list[Absence]) -> None:
        self.namespace.save(ABSENCES_KEY, {
            "absences": [a.to_dict() for a in absences],
            "lastModified": datetime.now().isoformat(),
        })

    # Mutations

    def _insert(
        self,
        absences: list[Absence],
        username: str,
        start: DayLike,
        end: DayLike,
        type,
        reason: str,
        created_at: Optional[datetime] = None
    ) -> tuple[list[Absence], Absence]:
        """Validate and insert into an in-memory list, evicting overlaps."""
        window = normalize_range(start, end)
        absence_type = AbsenceType.parse(type)
        if self.roster is not None:
            self.roster.require(username)

        candidate = Absence(
            username=username,
            start_day=window.start,
            end_day=window.end,
            type=absence_type,
            reason=reason or "",
            created_at=created_at or datetime.now(),
        )

        existing = next((a for a in absences if a.id == candidate.id), None)
        if existing is not None:
            return absences, existing

        kept = []
        for absence in absences:
            if absence.username == username and absence.overlaps(window.start, window.end):
                logger.debug("Evicting absence %s, overlapped by %s", absence.id, candidate.id)
                continue
            kept.append(absence)
        kept.append(candidate)
        return kept, candidate

    def add(
        self,
        username: str,
        start: DayLike,
        end: DayLike,
        type=AbsenceType.VACATION,
        reason: str = ""
    ) -> Absence:
        """
        Record an absence and return the stored record.

        Adding an absence whose id is already stored returns the stored
        record unchanged.
        """
        self.namespace.ensure_writable()
        absences, absence = self._insert(self._load(), username, start, end, type, reason)
        self._save(absences)
        return absence

    def remove(self, absence_id: str) -> None:
        """Delete by id. Removing an unknown id is a no-op."""
        self.namespace.ensure_writable()
        absences = self._load()
        remaining = [a for a in absences if a.id != absence_id]
        if len(remaining) != len(absences):
            self._save(remaining)

    # Queries

    def snapshot(self) -> "AbsenceCalendar":
        """Read-only view of the namespace absences as of now."""
        return AbsenceCalendar(self._load())

    def all(self) -> list[Absence]:
        return self.snapshot().all()

    def get(self, absence_id: str) -> Optional[Absence]:
        return next((a for a in self._load() if a.id == absence_id), None)

    def for_user(
        self,
        username: str,
        start: Optional[DayLike] = None,
        end: Optional[DayLike] = None
    ) -> list[Absence]:
        return self.snapshot().for_user(username, start, end)

    def in_range(self, start: DayLike, end: DayLike) -> list[Absence]:
        return self.snapshot().in_range(start, end)

    def load_all_namespaces(self) -> list[Absence]:
        """
        Union of absences across every project key, each tagged with its origin.

        Used by the cross-project read-only view.
        """
        cross = Namespace(self.namespace.store, CROSS_PROJECT)
        return AbsenceStore(cross).all()

    def is_absent(self, username: str, day: DayLike) -> bool:
        return self.snapshot().is_absent(username, day)

    def hours_lost(self, username: str, start: DayLike, end: DayLike, weekly_hours: float) -> float:
        return self.snapshot().hours_lost(username, start, end, weekly_hours)

    def team_stats(
        self,
        members: Iterable[TeamMember],
        start: DayLike,
        end: DayLike,
        default_weekly_hours: float = 40.0
    ) -> TeamAbsenceStats:
        return self.snapshot().team_stats(members, start, end, default_weekly_hours)

    # CSV

    def import_csv(self, text: str) -> ImportResult:
        """
        Import ``username,start,end,reason,type[,created]`` rows.

        Best-effort: bad rows are reported with their 1-based line number and
        skipped, the good rows are stored.
        """
        self.namespace.ensure_writable()
        result = ImportResult()
        absences = self._load()

        reader = csv.reader(io.StringIO(text.lstrip("\ufeff")))
        first = True
        for row in reader:
            line = reader.line_num
            fields = [value.strip() for value in row]
            if not any(fields):
                continue
            if first:
                first = False
                if "username" in ",".join(fields).lower():
                    continue

            fields += [""] * (6 - len(fields))
            username, start, end, reason, absence_type, created = fields[:6]
            if not username or not start or not end:
                result.errors.append(ImportRowError(line, "Missing required fields"))
                continue

            try:
                created_day = optional_day(created)
                created_at = datetime.combine(created_day, time()) if created_day else None
                absences, _ = self._insert(
                    absences, username, start, end,
                    AbsenceType.parse(absence_type, strict=False), reason, created_at
                )
            except InvalidDate as e:
                result.errors.append(ImportRowError(line, f"Invalid date format: {e.value!r}"))
                continue
            except CapacityError as e:
                result.errors.append(ImportRowError(line, str(e)))
                continue
            result.imported += 1

        if result.imported:
            self._save(absences)
        logger.debug("CSV import into %s: %d imported, %d errors",
                     self.namespace.project_key, result.imported, len(result.errors))
        return result

    def export_csv(self, start: Optional[DayLike] = None, end: Optional[DayLike] = None) -> str:
        """CSV of absences touching the optional range; the header is always written."""
        start_day = optional_day(start)
        end_day = optional_day(end)

        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(CSV_HEADER)
        for absence in self.all():
            if start_day and absence.end_day < start_day:
                continue
            if end_day and absence.start_day > end_day:
                continue
            writer.writerow([
                absence.username,
                absence.start_day.isoformat(),
                absence.end_day.isoformat(),
                absence.reason,
                absence.type.value,
                absence.created_at.date().isoformat(),
            ])
        return buffer.getvalue()


class AbsenceCalendar:
    """
    Immutable snapshot of absences, indexed by member.

    Capacity, velocity and forecast calculations read absences through a
    calendar taken once per query.
    """

    def __init__(self, absences: Iterable[Absence] = ()):
        self._by_user: dict[str, list[Absence]] = {}
        for absence in sorted(absences, key=lambda a: a.start_day):
            self._by_user.setdefault(absence.username, []).append(absence)

    def all(self) -> list[Absence]:
        return sorted(
            (a for absences in self._by_user.values() for a in absences),
            key=lambda a: (a.start_day, a.username)
        )

    def for_user(
        self,
        username: str,
        start: Optional[DayLike] = None,
        end: Optional[DayLike] = None
    ) -> list[Absence]:
        """A member's absences touching ``[start, end]``, ordered by start day."""
        start_day = optional_day(start)
        end_day = optional_day(end)
        result = []
        for absence in self._by_user.get(username, []):
            if start_day and absence.end_day < start_day:
                continue
            if end_day and absence.start_day > end_day:
                continue
            result.append(absence)
        return result

    def in_range(self, start: DayLike, end: DayLike) -> list[Absence]:
        """Every member's absences touching ``[start, end]``, ordered by start day."""
        start_day = normalize_day(start)
        end_day = normalize_day(end)
        return [a for a in self.all() if a.overlaps(start_day, end_day)]

    def is_absent(self, username: str, day: DayLike) -> bool:
        target = normalize_day(day)
        return any(a.start_day <= target <= a.end_day for a in self._by_user.get(username, []))

    def working_days_lost(self, username: str, start: DayLike, end: DayLike) -> int:
        start_day = normalize_day(start)
        end_day = normalize_day(end)
        return sum(
            _clipped_working_days(a, start_day, end_day)
            for a in self.for_user(username, start_day, end_day)
        )

    def hours_lost(self, username: str, start: DayLike, end: DayLike, weekly_hours: float) -> float:
        """Working hours lost to absences in ``[start, end]``, to one decimal."""
        days = self.working_days_lost(username, start, end)
        return round_half_up(days * weekly_hours / 5, 1)

    def team_stats(
        self,
        members: Iterable[TeamMember],
        start: DayLike,
        end: DayLike,
        default_weekly_hours: float = 40.0
    ) -> TeamAbsenceStats:
        window = normalize_range(start, end)
        stats = TeamAbsenceStats(start_day=window.start, end_day=window.end)

        for member in members:
            member_absences = self.for_user(member.username, window.start, window.end)
            weekly = member.weekly_hours(default_weekly_hours)
            days_off = sum(_clipped_working_days(a, window.start, window.end) for a in member_absences)
            hours = round_half_up(days_off * weekly / 5, 1)

            stats.by_member[member.username] = MemberAbsenceStats(
                username=member.username,
                absence_count=len(member_absences),
                working_days_off=days_off,
                hours_lost=hours,
                absences=member_absences,
            )
            stats.total_absences += len(member_absences)
            stats.total_days_off += days_off
            stats.total_hours_impact += hours
            for absence in member_absences:
                stats.by_type[absence.type.value] += 1

        return stats
