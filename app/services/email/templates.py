"""HTML and plain-text email templates."""

from html import escape
from typing import Any, Callable, Dict, Tuple

from app.config import get_settings

RenderedEmail = Dict[str, str]

SUPPORT_EMAIL = "support@mintoons.com"


def _button(url: str, label: str) -> str:
    return (
        f'<a href="{escape(url, quote=True)}" '
        'style="display:inline-block;padding:12px 24px;background:#7c3aed;'
        'color:#fff;border-radius:8px;text-decoration:none;font-weight:bold">'
        f"{escape(label)}</a>"
    )


def _layout(heading: str, body_html: str) -> str:
    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      <div style="background: linear-gradient(135deg,#7c3aed,#ec4899); padding: 24px; border-radius: 12px 12px 0 0;">
        <h1 style="color: #fff; margin: 0;">{escape(heading)}</h1>
      </div>
      <div style="padding: 24px; background: #fff; border: 1px solid #eee; border-radius: 0 0 12px 12px;">
        {body_html}
        <p style="color:#888;font-size:12px;margin-top:32px">
          Questions? Contact us at <a href="mailto:{SUPPORT_EMAIL}">{SUPPORT_EMAIL}</a>
        </p>
      </div>
    </div>
    """


def _welcome(data: Dict[str, Any], app_url: str) -> Tuple[str, str]:
    name = escape(str(data.get("name", "Writer")))
    html = _layout(
        "Welcome to Mintoons!",
        f"<p>Hi {name}! 🎨</p>"
        "<p>Your story adventure starts now. Pick a genre, a setting and a hero, "
        "and our AI helper will write alongside you.</p>"
        f"<p>{_button(app_url + '/create-stories', 'Create Your First Story 🎯')}</p>",
    )
    text = f"Hi {data.get('name', 'Writer')}! Welcome to Mintoons. Start writing at {app_url}/create-stories"
    return html, text


def _password_reset(data: Dict[str, Any], app_url: str) -> Tuple[str, str]:
    reset_url = f"{app_url}/reset-password?token={data['token']}"
    name = escape(str(data.get("name", "there")))
    html = _layout(
        "Reset your password",
        f"<p>Hi {name},</p>"
        "<p>We received a request to reset your password. This link expires in 1 hour.</p>"
        f"<p>{_button(reset_url, 'Reset My Password 🔐')}</p>"
        "<p>If you didn't ask for this, you can ignore this email.</p>",
    )
    text = f"Reset your Mintoons password (valid for 1 hour): {reset_url}"
    return html, text


def _email_verification(data: Dict[str, Any], app_url: str) -> Tuple[str, str]:
    verify_url = f"{app_url}/verify-email?token={data['token']}"
    html = _layout(
        "Confirm your email",
        f"<p>Hi {escape(str(data.get('name', 'there')))},</p>"
        "<p>Please confirm your email address. This link expires in 24 hours.</p>"
        f"<p>{_button(verify_url, 'Verify Email ✅')}</p>",
    )
    return html, f"Confirm your Mintoons email (valid for 24 hours): {verify_url}"


def _parent_consent(data: Dict[str, Any], app_url: str) -> Tuple[str, str]:
    child = escape(str(data.get("child_name", "Your child")))
    consent_url = f"{app_url}/parent-consent?user={data.get('user_id', '')}"
    html = _layout(
        "Parental consent needed",
        f"<p>{child} has signed up for Mintoons, a safe place for children to write stories.</p>"
        "<p>Because they are under 13, we need your permission before their account is fully active.</p>"
        f"<p>{_button(consent_url, 'Review and Approve')}</p>",
    )
    return html, f"{data.get('child_name', 'Your child')} needs your consent to use Mintoons: {consent_url}"


def _story_completed(data: Dict[str, Any], app_url: str) -> Tuple[str, str]:
    title = escape(str(data.get("story_title", "your story")))
    words = int(data.get("word_count", 0))
    html = _layout(
        "You finished a story! 🎉",
        f"<p>Amazing work, {escape(str(data.get('name', 'Writer')))}!</p>"
        f"<p><strong>{title}</strong> is complete with {words} words.</p>"
        f"<p>{_button(app_url + '/my-stories', 'View Your Story 📚')}</p>",
    )
    return html, f"You completed \"{data.get('story_title', '')}\" with {words} words!"


def _mentor_comment(data: Dict[str, Any], app_url: str) -> Tuple[str, str]:
    story_url = f"{app_url}/my-stories/{data.get('story_id', '')}"
    html = _layout(
        "Your mentor left a comment 💬",
        f"<p>{escape(str(data.get('mentor_name', 'Your mentor')))} commented on "
        f"<strong>{escape(str(data.get('story_title', 'your story')))}</strong>:</p>"
        f"<blockquote style=\"border-left:4px solid #7c3aed;padding-left:12px;color:#555\">"
        f"{escape(str(data.get('comment', '')))}</blockquote>"
        f"<p>{_button(story_url, 'View Comment & Reply 💬')}</p>",
    )
    return html, f"New comment on \"{data.get('story_title', '')}\": {data.get('comment', '')} ({story_url})"


def _weekly_progress(data: Dict[str, Any], app_url: str) -> Tuple[str, str]:
    stories = int(data.get("stories_this_week", 0))
    words = int(data.get("words_this_week", 0))
    streak = int(data.get("current_streak", 0))
    html = _layout(
        "Your writing this week 📈",
        f"<p>Hi {escape(str(data.get('name', 'Writer')))}, here's what you did this week:</p>"
        f"<ul><li>{stories} stories written</li><li>{words} words</li>"
        f"<li>{streak}-day writing streak</li></ul>"
        f"<p>{_button(app_url + '/progress', 'View Full Progress 📈')}</p>",
    )
    return html, f"This week: {stories} stories, {words} words, {streak}-day streak."


def _achievement_unlocked(data: Dict[str, Any], app_url: str) -> Tuple[str, str]:
    achievement = escape(str(data.get("achievement", "a new achievement")))
    html = _layout(
        "Achievement unlocked! 🏆",
        f"<p>Congratulations, {escape(str(data.get('name', 'Writer')))}!</p>"
        f"<p>You earned <strong>{achievement}</strong>.</p>"
        f"<p>{_button(app_url + '/progress', 'View All Achievements 🏆')}</p>",
    )
    return html, f"Achievement unlocked: {data.get('achievement', '')}"



def _announcement(data: Dict[str, Any], app_url: str) -> Tuple[str, str]:
    title = str(data["title"])
    message = str(data["message"])
    action_url = data.get("action_url") or "/dashboard"
    html = _layout(
        title,
        f"<p>{escape(message)}</p>"
        f"<p>{_button(app_url + action_url, 'Open Mintoons')}</p>",
    )
    return html, f"{title}\n\n{message}"


TEMPLATES: Dict[str, Tuple[str, Callable[[Dict[str, Any], str], Tuple[str, str]]]] = {
    "welcome": ("Welcome to Mintoons! 🎨✨", _welcome),
    "password_reset": ("Reset Your Mintoons Password 🔐", _password_reset),
    "email_verification": ("Confirm your Mintoons email ✅", _email_verification),
    "parent_consent": ("Your child wants to join Mintoons", _parent_consent),
    "story_completed": ("🎉 Amazing! You completed a new story!", _story_completed),
    "mentor_comment": ("💬 Your mentor left you a comment!", _mentor_comment),
    "weekly_progress": ("📈 Your amazing writing progress this week!", _weekly_progress),
    "achievement_unlocked": ("🏆 Achievement Unlocked! You did it!", _achievement_unlocked),
    "announcement": ("📣 News from Mintoons", _announcement),
}


def render_template(template: str, data: Dict[str, Any]) -> RenderedEmail:
    """
    Render a named template.

    Args:
        template: Key of :data:`TEMPLATES`.
        data: Template variables.

    Returns:
        Dict with ``subject``, ``html`` and ``text``.

    Raises:
        KeyError: If the template is unknown or a required variable is missing.
    """
    if template not in TEMPLATES:
        raise KeyError(f"Unknown email template: {template}")
    subject, builder = TEMPLATES[template]
    html, text = builder(data, get_settings().app_url)
    return {"subject": subject, "html": html, "text": text}
