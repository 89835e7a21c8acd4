from __future__ import annotations

from inboxie.models import Category

CATEGORY_SYSTEM = (
    "You are an expert email categorization assistant. Be precise and conservative "
    "with Work categorization. Most company emails should be Newsletter unless they "
    "involve direct business collaboration. Return ONLY JSON that matches the schema."
)

CATEGORY_GUIDE = """\
PERSONAL: personal life and accounts: banking, credit cards, investments, pensions,
insurance, healthcare, utilities, friends and family, personal services.

WORK: job and professional business: coworkers, managers, clients, vendors, project
updates, meeting requests, work tools and alerts, career discussions.

NEWSLETTER: mass marketing and promotional content: sales campaigns, company blogs,
industry news not personally addressed, product announcements, periodic newsletters.

SHOPPING: e-commerce transactions: purchase confirmations, receipts, shipping and
delivery tracking, returns and exchanges.

SUPPORT: customer service interactions: help desk tickets, troubleshooting, service
problems, billing disputes that need action.

OTHER: everything else: government, legal, medical, educational, unclear emails.

Account notifications from financial services are PERSONAL, not newsletters."""

REPLY_SYSTEM = (
    "You decide whether the recipient of an email personally needs to reply to it. "
    "Automated notifications, receipts and broadcasts never need a reply. "
    "Urgency is high when a deadline or a blocked person is waiting, medium when a "
    "response is expected within days, low otherwise. Return ONLY JSON."
)

TONE_SYSTEM = (
    "You are an expert communication analyst. Analyze writing patterns and respond "
    "with JSON only."
)

REPLY_WRITER_SYSTEM = (
    "You are an expert email writer. Generate responses that match the user's "
    "established writing tone and style. Do not invent facts that are not in the "
    "original email. Return only the reply text."
)


def category_names() -> str:
    return ", ".join(c.value for c in Category)


def categorize_prompt(sender: str, subject: str, body: str) -> str:
    return (
        f"Categorize this email. Choose exactly ONE category from: {category_names()}\n\n"
        f"From: {sender}\n"
        f"Subject: {subject}\n"
        f"Content: {body[:1500]}\n\n"
        f"CATEGORIES EXPLAINED:\n{CATEGORY_GUIDE}"
    )


def reply_prompt(sender: str, subject: str, body: str) -> str:
    return (
        f"From: {sender}\n"
        f"Subject: {subject}\n"
        f"Content: {body[:1500]}\n\n"
        "Does this email need a personal reply from the recipient?"
    )


def tone_prompt(samples: str) -> str:
    return (
        "Analyze these sent emails to understand the user's writing tone and style:\n\n"
        f"{samples}\n\n"
        "Analyze the formality level, typical length, writing style characteristics "
        "and common phrases or expressions."
    )


def reply_writer_prompt(
    sender: str,
    subject: str,
    body: str,
    formality: str,
    length: str,
    style: list[str],
    common_phrases: list[str],
) -> str:
    return (
        "Generate a response to this email using the user's writing tone:\n\n"
        f"Original Email:\nFrom: {sender}\nSubject: {subject}\nContent: {body[:1000]}\n\n"
        "User's Writing Style:\n"
        f"- Formality: {formality}\n"
        f"- Length: {length}\n"
        f"- Style characteristics: {', '.join(style)}\n"
        f"- Common phrases: {', '.join(common_phrases)}\n\n"
        "Match the formality and usual length, use the common phrases naturally and "
        "address the original email appropriately."
    )
