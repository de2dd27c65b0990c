"""
People Directory
Builds the admin "people lookup": everyone who registered for an event or
was brought along as a guest, merged into one record per person.

People are matched by email first, then by case-insensitive name, so a
guest listed without an email joins the registrant record of the same name.
"""

import logging

from database import Event, EventRegistration, _iso

logger = logging.getLogger(__name__)


class _Directory:
    def __init__(self):
        self.people = {}
        self.name_index = {}

    def _add_attendance(self, person, attendance, spent, is_guest):
        already_listed = any(
            e['event_id'] == attendance['event_id'] and e['role'] == attendance['role']
            for e in person['events']
        )
        if not already_listed:
            person['events'].append(attendance)
            person['total_events'] = len({e['event_id'] for e in person['events']})

        person['total_spent'] += spent
        if not is_guest:
            person['is_guest'] = False
        if (attendance['registration_date'] or '') > (person['last_seen'] or ''):
            person['last_seen'] = attendance['registration_date']

    def add(self, name, email, phone, attendance, spent, is_guest):
        normalized_name = name.strip().lower()
        email_key = email.strip().lower() if email else ''

        if email_key and email_key in self.people:
            person = self.people[email_key]
            self._add_attendance(person, attendance, spent, is_guest)
            if phone and not person['phone']:
                person['phone'] = phone
            if normalized_name:
                self.name_index[normalized_name] = email_key
            return

        if normalized_name and normalized_name in self.name_index:
            person = self.people.get(self.name_index[normalized_name])
            if person:
                self._add_attendance(person, attendance, spent, is_guest)
                if email and not person['email']:
                    person['email'] = email
                if phone and not person['phone']:
                    person['phone'] = phone
                return

        key = email_key or f'name:{normalized_name}'
        self.people[key] = {
            'name': name,
            'email': email or '',
            'phone': phone,
            'events': [attendance],
            'total_spent': spent,
            'total_events': 1,
            'last_seen': attendance['registration_date'],
            'is_guest': is_guest,
        }
        if normalized_name:
            self.name_index[normalized_name] = key


def build_people_directory(events, registrations):
    """
    Aggregate registrations into per-person records.

    Args:
        events: Iterable of Event rows
        registrations: Iterable of EventRegistration rows, newest first

    Returns:
        list of person dicts sorted by events attended (desc), then name
    """
    event_map = {event.id: event for event in events}
    directory = _Directory()

    for reg in registrations:
        event = event_map.get(reg.event_id)
        event_title = event.title if event else 'Unknown Event'
        event_date = _iso(event.date) if event else ''
        registered_at = _iso(reg.created_at)
        guests = reg.guests
        subtotal = float(reg.subtotal or 0)

        directory.add(
            reg.name,
            reg.email,
            reg.phone or None,
            {
                'event_id': reg.event_id,
                'event_title': event_title,
                'event_date': event_date,
                'registration_date': registered_at,
                'adults': reg.adults,
                'kids': reg.kids,
                'subtotal': subtotal,
                'payment_status': reg.payment_status,
                'sponsorship_name': reg.sponsorship.name if reg.sponsorship else None,
                'guests': guests,
                'role': 'registrant',
            },
            subtotal,
            False
        )

        for guest in guests:
            guest_name = (guest.get('name') or '').strip()
            if not guest_name:
                continue
            directory.add(
                guest_name,
                (guest.get('email') or '').strip(),
                None,
                {
                    'event_id': reg.event_id,
                    'event_title': event_title,
                    'event_date': event_date,
                    'registration_date': registered_at,
                    'adults': 0,
                    'kids': 0,
                    'subtotal': 0,
                    'payment_status': reg.payment_status,
                    'sponsorship_name': None,
                    'guests': [],
                    'role': 'guest',
                    'registered_by': reg.name,
                },
                0,
                True
            )

    return sorted(directory.people.values(), key=lambda p: (-p['total_events'], p['name'].lower()))


def load_people_directory(db):
    """Query everything the people lookup needs and aggregate it"""
    events = db.query(Event).order_by(Event.date.desc()).all()
    registrations = db.query(EventRegistration).order_by(EventRegistration.created_at.desc()).all()

    people = build_people_directory(events, registrations)
    logger.info(f"Built people directory: {len(people)} people from {len(registrations)} registrations")

    return {
        'people': people,
        'all_events': [
            {'id': e.id, 'title': e.title, 'date': _iso(e.date), 'slug': e.slug}
            for e in events
        ],
        'stats': {
            'total_people': len(people),
            'total_registrations': len(registrations),
            'total_events': len(events),
        }
    }
