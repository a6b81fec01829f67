"""
Events module.

- Events CRUD with per-event membership (LEAD / ORGANIZER / VOLUNTEER / VIEWER)
- SOP template application on create and change-template
- Speaker / volunteer / venue partner links hang off an event
"""
