# core/template_engine.py
"""
Email template rendering for FocusOS transactional mail
Jinja2 with autoescaping, so user-supplied names never inject markup;
every message gets a plain-text part derived from the HTML.
"""

import re
import os
import logging
from typing import Dict, Any, Optional
from dataclasses import dataclass
from datetime import datetime

from jinja2 import Environment, FileSystemLoader, select_autoescape, StrictUndefined
from jinja2.exceptions import TemplateError, TemplateNotFound, UndefinedError, TemplateSyntaxError
from bs4 import BeautifulSoup

# Configure logging
logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_DIR = os.path.join(
    os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'templates', 'email'
)


class TemplateRenderingError(Exception):
    """Template missing, malformed or given incomplete variables"""
    pass


@dataclass
class RenderedEmail:
    """Result of rendering one message"""
    subject: str
    html: str
    text: str
    template: str
    size_bytes: int
    render_time_ms: float


class EmailTemplateEngine:
    """
    Renders the HTML email templates shipped with the application
    """

    def __init__(self, template_dir: Optional[str] = None):
        """
        Args:
            template_dir: directory holding the *.html email templates
        """
        self.template_dir = template_dir or DEFAULT_TEMPLATE_DIR
        self.env = Environment(
            loader=FileSystemLoader(self.template_dir),
            autoescape=select_autoescape(['html', 'xml']),
            undefined=StrictUndefined,  # Fail on undefined variables
            trim_blocks=True,
            lstrip_blocks=True
        )
        logger.info(f"EmailTemplateEngine loading templates from {self.template_dir}")

    def render(self, template_name: str, subject: str, variables: Dict[str, Any]) -> RenderedEmail:
        """
        Render an email template

        Args:
            template_name: file name under the template directory
            subject: message subject, passed to the template as well
            variables: template variables

        Returns:
            RenderedEmail with HTML and text parts
        """
        start_time = datetime.now()
        try:
            template = self.env.get_template(template_name)
            html = template.render(subject=subject, **variables)
        except TemplateNotFound as e:
            raise TemplateRenderingError(f"Email template not found: {e}")
        except UndefinedError as e:
            raise TemplateRenderingError(f"Template variable error: {str(e)}")
        except TemplateSyntaxError as e:
            raise TemplateRenderingError(f"Template syntax error: {str(e)}")
        except TemplateError as e:
            logger.error(f"Template rendering failed: {str(e)}")
            raise TemplateRenderingError(f"Template rendering failed: {str(e)}")

        text = self._html_to_text(html)
        render_time_ms = (datetime.now() - start_time).total_seconds() * 1000
        size_bytes = len(html.encode('utf-8')) + len(text.encode('utf-8'))

        logger.debug(f"Rendered {template_name} in {render_time_ms:.2f}ms, size: {size_bytes:,} bytes")
        return RenderedEmail(
            subject=subject,
            html=html,
            text=text,
            template=template_name,
            size_bytes=size_bytes,
            render_time_ms=render_time_ms
        )

    def _html_to_text(self, html_content: str) -> str:
        """
        Convert HTML to plain text with proper formatting for email
        """
        if not html_content:
            return ""

        soup = BeautifulSoup(html_content, 'html.parser')

        for tag in soup.find_all(['style', 'title']):
            tag.decompose()

        for br in soup.find_all('br'):
            br.replace_with('\n')

        for p in soup.find_all('p'):
            p.insert_after('\n\n')

        for header in soup.find_all(['h1', 'h2', 'h3', 'h4', 'h5', 'h6']):
            header.insert_before('\n')
            header.insert_after('\n')

        for li in soup.find_all('li'):
            li.insert_before('- ')
            li.insert_after('\n')

        # Handle links
        for link in soup.find_all('a', href=True):
            link_text = link.get_text().strip()
            href = link['href']
            if href != link_text:
                link.replace_with(f"{link_text} ({href})")

        text = soup.get_text()

        # Clean up whitespace
        text = re.sub(r'[ \t]+', ' ', text)
        text = re.sub(r' *\n *', '\n', text)
        text = re.sub(r'\n{3,}', '\n\n', text)
        return text.strip()
