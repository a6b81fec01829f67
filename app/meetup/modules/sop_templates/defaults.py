"""
Built-in SOP task lists.

DEFAULT_MEETUP_TASKS seeds the "Default Meetup" template (scripts/init_db.py).
KUG_CHENNAI_TASKS backs POST /api/templates/default.
"""
from __future__ import annotations

DEFAULT_MEETUP_NAME = "Default Meetup"
DEFAULT_MEETUP_DESCRIPTION = "Standard checklist for community meetups"

KUG_CHENNAI_NAME = "KUG Chennai Default SOP"
KUG_CHENNAI_DESCRIPTION = (
    "Standard operating procedure for KUG Chennai meetups: planning, creatives, promotions, "
    "venue logistics, volunteer coordination, event-day operations, awards, and post-event follow-ups."
)


def _t(title: str, relative_days: int, priority: str, section: str, subcategory: str | None = None) -> dict:
    task = {"title": title, "relativeDays": relative_days, "priority": priority, "section": section}
    if subcategory:
        task["subcategory"] = subcategory
    return task


DEFAULT_MEETUP_TASKS = [
    _t("Venue confirmation", 30, "CRITICAL", "PRE_EVENT"),
    _t("Speaker outreach & confirmation", 28, "CRITICAL", "PRE_EVENT"),
    _t("Create event page / RSVP link", 21, "HIGH", "PRE_EVENT"),
    _t("Design event poster / social media graphics", 21, "HIGH", "PRE_EVENT"),
    _t("Post event on social media", 14, "HIGH", "PRE_EVENT"),
    _t("Confirm AV / projector setup", 14, "MEDIUM", "PRE_EVENT"),
    _t("Send reminder to speakers (slides, bio, etc.)", 7, "HIGH", "PRE_EVENT"),
    _t("Coordinate volunteer assignments", 7, "MEDIUM", "PRE_EVENT"),
    _t("Order food / refreshments", 5, "MEDIUM", "PRE_EVENT"),
    _t("Send attendee reminder email", 2, "MEDIUM", "PRE_EVENT"),
    _t("Print name badges / signage", 1, "LOW", "PRE_EVENT"),
    _t("Venue setup & tech check", 0, "CRITICAL", "ON_DAY"),
    _t("Registration desk & name badges", 0, "HIGH", "ON_DAY"),
    _t("Welcome & opening remarks", 0, "HIGH", "ON_DAY"),
    _t("Coordinate speaker transitions", 0, "MEDIUM", "ON_DAY"),
    _t("Photo & video capture", 0, "MEDIUM", "ON_DAY"),
    _t("Venue teardown & cleanup", 0, "MEDIUM", "ON_DAY"),
    _t("Send thank-you emails to speakers & sponsors", -1, "HIGH", "POST_EVENT"),
    _t("Share event photos & recordings", -3, "MEDIUM", "POST_EVENT"),
    _t("Collect attendee feedback (survey)", -2, "HIGH", "POST_EVENT"),
    _t("Write event recap / blog post", -5, "LOW", "POST_EVENT"),
    _t("Team retrospective", -7, "MEDIUM", "POST_EVENT"),
]

KUG_CHENNAI_TASKS = [
    # PRE-EVENT: Planning & Coordination
    _t("Finalize event date, time, and theme", 30, "CRITICAL", "PRE_EVENT", "Planning & Coordination"),
    _t("Check Sessionize for speaker submissions", 28, "HIGH", "PRE_EVENT", "Planning & Coordination"),
    _t("Confirm speaker(s) and hackathon/jam format (if applicable)", 21, "CRITICAL", "PRE_EVENT", "Planning & Coordination"),
    _t("Create event brief (agenda, audience, outcomes)", 21, "HIGH", "PRE_EVENT", "Planning & Coordination"),
    _t("Confirm food, swag, or sponsorships", 14, "HIGH", "PRE_EVENT", "Planning & Coordination"),
    _t("Arrange speaker gifts", 7, "MEDIUM", "PRE_EVENT", "Planning & Coordination"),

    # PRE-EVENT: Creatives & Content
    _t("Use last event testimonials for promotion", 21, "MEDIUM", "PRE_EVENT", "Creatives & Content"),
    _t("Write event description (short + long)", 21, "HIGH", "PRE_EVENT", "Creatives & Content"),
    _t("Design event banner (16:9, 1:1, and story formats)", 18, "HIGH", "PRE_EVENT", "Creatives & Content"),
    _t("Create speaker post templates in Canva", 14, "MEDIUM", "PRE_EVENT", "Creatives & Content"),
    _t("Design individual speaker announcement posts for all platforms", 14, "MEDIUM", "PRE_EVENT", "Creatives & Content"),
    _t("Create Canva promo video (15–30 sec; square + story)", 12, "MEDIUM", "PRE_EVENT", "Creatives & Content"),
    _t("Prepare speaker intro slides", 7, "HIGH", "PRE_EVENT", "Creatives & Content"),
    _t("Draft thank-you & recap post templates", 5, "LOW", "PRE_EVENT", "Creatives & Content"),

    # PRE-EVENT: Event Page & Registration
    _t("Create Luma page", 21, "CRITICAL", "PRE_EVENT", "Event Page & Registration"),
    _t("Set capacity (e.g. 200) and enable over-capacity waiting list", 21, "HIGH", "PRE_EVENT", "Event Page & Registration"),
    _t("Set up custom registration questions", 21, "HIGH", "PRE_EVENT", "Event Page & Registration"),
    _t("Add all event details, creatives, and promo video to event page", 18, "HIGH", "PRE_EVENT", "Event Page & Registration"),
    _t("Invite all subscribers via Luma", 18, "HIGH", "PRE_EVENT", "Event Page & Registration"),
    _t("Add co-hosts / managers to event page", 18, "MEDIUM", "PRE_EVENT", "Event Page & Registration"),

    # PRE-EVENT: Promotions & Announcements
    _t("Post on Twitter (X)", 14, "HIGH", "PRE_EVENT", "Promotions & Announcements"),
    _t("Post on Instagram (feed + story + reel)", 14, "HIGH", "PRE_EVENT", "Promotions & Announcements"),
    _t("Share on LinkedIn, WhatsApp, Slack, and Discord", 14, "HIGH", "PRE_EVENT", "Promotions & Announcements"),
    _t("Try to partner with other communities", 14, "MEDIUM", "PRE_EVENT", "Promotions & Announcements"),
    _t("Cross-post on tech community boards (e.g. tamilnadu.tech)", 12, "MEDIUM", "PRE_EVENT", "Promotions & Announcements"),
    _t("Submit to official events page (e.g. JetBrains, Google)", 14, "MEDIUM", "PRE_EVENT", "Promotions & Announcements"),
    _t("Seek goodies/swag support from sponsors", 14, "MEDIUM", "PRE_EVENT", "Promotions & Announcements"),
    _t("Schedule reminder posts (3 days + 1 day before)", 5, "HIGH", "PRE_EVENT", "Promotions & Announcements"),

    # PRE-EVENT: Venue & Logistics
    _t("Confirm venue booking & capacity", 14, "CRITICAL", "PRE_EVENT", "Venue & Logistics"),
    _t("Arrange projector, mic, Wi-Fi, and seating", 7, "HIGH", "PRE_EVENT", "Venue & Logistics"),
    _t("Keep backup cables/adapters ready", 3, "MEDIUM", "PRE_EVENT", "Venue & Logistics"),

    # PRE-EVENT: Volunteer Coordination
    _t("Assign volunteer lead to run awards and track tasks", 10, "HIGH", "PRE_EVENT", "Volunteer Coordination"),
    _t("Assign volunteers for: Registration desk, AV setup, Photo/video, Food coordination, Gift distribution & cleanup", 7, "HIGH", "PRE_EVENT", "Volunteer Coordination"),
    _t("Conduct pre-event sync with all volunteers", 3, "HIGH", "PRE_EVENT", "Volunteer Coordination"),

    # ON-DAY: Venue Setup & Live Operations
    _t("Ensure AV & lighting tested before start", 0, "CRITICAL", "ON_DAY", "Venue Setup & Live Operations"),
    _t("Setup registration desk with QR sign-in", 0, "HIGH", "ON_DAY", "Venue Setup & Live Operations"),
    _t("Arrange projector, mic, Wi-Fi, and seating (final check)", 0, "HIGH", "ON_DAY", "Venue Setup & Live Operations"),
    _t("Organize stickers, swags, snacks, and water", 0, "MEDIUM", "ON_DAY", "Venue Setup & Live Operations"),
    _t("Prepare speaker gifts for distribution after sessions", 0, "MEDIUM", "ON_DAY", "Venue Setup & Live Operations"),

    # ON-DAY: During the Event
    _t("Capture photos & short clips", 0, "HIGH", "ON_DAY", "During the Event"),
    _t("Post live updates/stories on social media", 0, "MEDIUM", "ON_DAY", "During the Event"),
    _t("Track attendee count & highlights", 0, "MEDIUM", "ON_DAY", "During the Event"),
    _t("Collect feedback or testimonials from attendees", 0, "MEDIUM", "ON_DAY", "During the Event"),

    # ON-DAY: Awards & Recognition
    _t("Keep name list & prizes table ready by noon on event day", 0, "HIGH", "ON_DAY", "Awards & Recognition"),
    _t("Distribute speaker gifts after their session (thank-you token)", 0, "MEDIUM", "ON_DAY", "Awards & Recognition"),
    _t("Announce and award hackathon winners at closing", 0, "HIGH", "ON_DAY", "Awards & Recognition"),
    _t("Certificates or goodies for top 3 winners", 0, "MEDIUM", "ON_DAY", "Awards & Recognition"),
    _t("Special mention for creativity or teamwork", 0, "LOW", "ON_DAY", "Awards & Recognition"),
    _t("Social promotion awards – recognize best event posts", 0, "LOW", "ON_DAY", "Awards & Recognition"),
    _t("Pick best 1–2 posts tagged with event hashtag", 0, "LOW", "ON_DAY", "Awards & Recognition"),
    _t("Give small gift (sticker pack, merch, voucher) for social winners", 0, "LOW", "ON_DAY", "Awards & Recognition"),
    _t("Announce social winners publicly during closing remarks", 0, "MEDIUM", "ON_DAY", "Awards & Recognition"),
    _t("Capture photo of each award moment for social media", 0, "MEDIUM", "ON_DAY", "Awards & Recognition"),

    # POST-EVENT: Follow-ups & Wrap-up
    _t("Post thank-you message across platforms (X, LinkedIn, Instagram)", -1, "HIGH", "POST_EVENT", "Follow-ups & Wrap-up"),
    _t("Add photos in shared drive", -1, "HIGH", "POST_EVENT", "Follow-ups & Wrap-up"),
    _t("Send thank-you email to attendees", -1, "HIGH", "POST_EVENT", "Follow-ups & Wrap-up"),
    _t("Share photo/video recap on social media", -2, "MEDIUM", "POST_EVENT", "Follow-ups & Wrap-up"),
    _t("Send feedback form via Luma", -1, "HIGH", "POST_EVENT", "Follow-ups & Wrap-up"),
    _t("Tag sponsors, speakers & winners in posts", -2, "MEDIUM", "POST_EVENT", "Follow-ups & Wrap-up"),
    _t("Conduct event retro (30 min call, mandatory)", -3, "CRITICAL", "POST_EVENT", "Follow-ups & Wrap-up"),
]
