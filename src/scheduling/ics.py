"""
ICS export for scheduled meetings.

Pure transform: meetings plus a display-name lookup in, one iCalendar
document out. Event times are floating local times, matching the slot
tokens they come from.
"""

import logging
from datetime import datetime, timezone
from typing import Iterable, Mapping

from icalendar import Calendar, Event

from src.schemas.meeting import Meeting, MeetingStatus
from src.scheduling.slots import DEFAULT_SLOT_MINUTES, parse_slot

logger = logging.getLogger(__name__)

DEFAULT_PRODID = "-//Conference Matchmaking//Meeting Scheduler//EN"
DEFAULT_UID_DOMAIN = "conference-matchmaking.app"
UNKNOWN_NAME = "Unknown"


def build_calendar(
    meetings: Iterable[Meeting],
    actor_names: Mapping[str, str],
    prodid: str = DEFAULT_PRODID,
    uid_domain: str = DEFAULT_UID_DOMAIN,
    default_minutes: int = DEFAULT_SLOT_MINUTES,
) -> Calendar:
    """Build a Calendar with one VEVENT per scheduled meeting."""
    cal = Calendar()
    cal.add("prodid", prodid)
    cal.add("version", "2.0")
    cal.add("calscale", "GREGORIAN")
    cal.add("method", "PUBLISH")

    stamp = datetime.now(timezone.utc)
    for meeting in meetings:
        if meeting.status != MeetingStatus.SCHEDULED or not meeting.chosen_slot:
            continue

        slot = parse_slot(meeting.chosen_slot, default_minutes)
        from_name = actor_names.get(meeting.from_actor_id) or UNKNOWN_NAME
        to_name = actor_names.get(meeting.to_actor_id) or UNKNOWN_NAME

        event = Event()
        event.add("uid", f"{meeting.id}@{uid_domain}")
        event.add("dtstamp", stamp)
        event.add("dtstart", slot.start)
        event.add("dtend", slot.end)
        event.add("summary", f"Meeting: {from_name} & {to_name}")
        event.add("description", f"Conference meeting between {from_name} and {to_name}")
        event.add("status", "CONFIRMED")
        cal.add_component(event)

    return cal


def export_to_ics(
    meetings: Iterable[Meeting],
    actor_names: Mapping[str, str],
    prodid: str = DEFAULT_PRODID,
    uid_domain: str = DEFAULT_UID_DOMAIN,
    default_minutes: int = DEFAULT_SLOT_MINUTES,
) -> str:
    """
    Render scheduled meetings as an .ics document.

    Meetings that are not scheduled are ignored. Missing names render as
    "Unknown".
    """
    cal = build_calendar(meetings, actor_names, prodid, uid_domain, default_minutes)
    return cal.to_ical().decode("utf-8")
