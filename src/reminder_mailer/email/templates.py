"""Email template management system."""

from __future__ import annotations

import html
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Final, Optional

from loguru import logger


class TemplateError(Exception):
    """Base exception for template operations."""
    pass


class TemplateNotFoundError(TemplateError):
    """Raised when a template cannot be found."""
    pass


class TemplateRenderError(TemplateError):
    """Raised when template rendering fails."""
    pass


@dataclass(frozen=True)
class ReminderEmail:
    """What an email about a reminder needs to say.

    ``date`` and ``time`` are the values shown to the recipient, normally in
    their own timezone ``timezone``.
    """
    email: str
    date: str
    time: str
    timezone: str = "UTC"
    app_name: str = "Reminder Mailer"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for template rendering."""
        when_formatted: str = f"{self.date} {self.time}"
        try:
            when: datetime = datetime.strptime(when_formatted, "%Y-%m-%d %H:%M")
            when_formatted = when.strftime("%A, %B %d, %Y at %I:%M %p")
        except ValueError:
            logger.warning(f"Could not format reminder time {self.date} {self.time}")

        return {
            'email': self.email,
            'date': self.date,
            'time': self.time,
            'timezone': self.timezone,
            'when_formatted': when_formatted,
            'app_name': self.app_name,
        }


class SimpleTemplateEngine:
    """Simple template engine for basic variable substitution.

    Supports {{variable}} syntax. Values are HTML-escaped when ``escape`` is set.
    """

    VARIABLE_PATTERN: re.Pattern[str] = re.compile(r'\{\{([^}]+)\}\}')

    def render(self, template: str, context: Dict[str, Any], escape: bool = False) -> str:
        """Render template with context data.

        Args:
            template: Template string with {{variable}} placeholders.
            context: Dictionary of context data.
            escape: Whether to HTML-escape substituted values.

        Returns:
            Rendered template string.

        Raises:
            TemplateRenderError: If a placeholder has no value in the context.
        """
        def replace_variable(match: re.Match[str]) -> str:
            name: str = match.group(1).strip()
            if name not in context or context[name] is None:
                raise TemplateRenderError(f"Missing template variable: {name}")
            value: str = str(context[name])
            return html.escape(value) if escape else value

        try:
            return self.VARIABLE_PATTERN.sub(replace_variable, template)
        except TemplateRenderError:
            raise
        except Exception as e:
            logger.error(f"Template rendering failed: {e}")
            raise TemplateRenderError(f"Failed to render template: {e}") from e


_BUILTIN_TEMPLATES: Final[Dict[str, Dict[str, str]]] = {
    'confirmation': {
        'subject': "Your reminder is set for {{date}} {{time}}",
        'text': """Hi,

Your reminder has been set for {{when_formatted}} ({{timezone}}).

We'll email {{email}} when it's time.

-- {{app_name}}
""",
        'html': """<!DOCTYPE html>
<html lang="en">
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
    <h2 style="color: #2c3e50;">Reminder confirmed</h2>
    <p>Your reminder has been set for <strong>{{when_formatted}}</strong> ({{timezone}}).</p>
    <p>We'll email <strong>{{email}}</strong> when it's time.</p>
    <p style="color: #6c757d; font-size: 12px;">{{app_name}}</p>
</body>
</html>
""",
    },
    'reminder': {
        'subject': "Reminder: {{date}} {{time}}",
        'text': """Hi,

This is your reminder for {{when_formatted}} ({{timezone}}).

-- {{app_name}}
""",
        'html': """<!DOCTYPE html>
<html lang="en">
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
    <h2 style="color: #2c3e50;">Reminder</h2>
    <p>This is your reminder for <strong>{{when_formatted}}</strong> ({{timezone}}).</p>
    <p style="color: #6c757d; font-size: 12px;">{{app_name}}</p>
</body>
</html>
""",
    },
}


class EmailTemplateManager:
    """Manager for email templates with fallback support."""

    FORMATS: Final[tuple[str, ...]] = ('subject', 'text', 'html')

    def __init__(self, templates_dir: Optional[Path] = None) -> None:
        """Initialize template manager.

        Args:
            templates_dir: Directory containing ``<name>.<format>`` template
                files. If None, uses built-in templates.
        """
        self.templates_dir: Optional[Path] = templates_dir
        self.engine: SimpleTemplateEngine = SimpleTemplateEngine()

        if templates_dir:
            logger.info(f"Email template manager initialized with custom templates: {templates_dir}")
        else:
            logger.debug("Email template manager initialized with built-in templates")

    def render(self, template_name: str, context: ReminderEmail) -> Dict[str, str]:
        """Render subject, text and HTML bodies for a template.

        Args:
            template_name: ``confirmation`` or ``reminder``, or a custom name.
            context: Reminder data to render.

        Returns:
            Dictionary with ``subject``, ``text`` and ``html`` keys.

        Raises:
            TemplateError: If the template is missing or cannot be rendered.
        """
        context_dict: Dict[str, Any] = context.to_dict()
        rendered: Dict[str, str] = {}

        for format_type in self.FORMATS:
            template_content: str = self._load_template(template_name, format_type)
            rendered[format_type] = self.engine.render(
                template_content, context_dict, escape=(format_type == 'html')
            ).strip()

        logger.debug(f"Rendered email template {template_name} for {context.email}")
        return rendered

    def _load_template(self, template_name: str, format_type: str) -> str:
        """Load template content from file or built-in templates.

        Raises:
            TemplateNotFoundError: If template cannot be found.
        """
        if self.templates_dir:
            template_file: Path = self.templates_dir / f"{template_name}.{format_type}"
            if template_file.exists():
                try:
                    return template_file.read_text(encoding='utf-8')
                except OSError as e:
                    logger.warning(f"Failed to read custom template {template_file}: {e}")

        if template_name not in _BUILTIN_TEMPLATES:
            raise TemplateNotFoundError(f"Template '{template_name}' not found")

        return _BUILTIN_TEMPLATES[template_name][format_type]
