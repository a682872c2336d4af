from __future__ import annotations

import sys
import textwrap
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from themeagent.memory.files import make_file_record  # noqa: E402
from themeagent.memory.schema import FileRecord  # noqa: E402


def _dedent(text: str) -> str:
    return textwrap.dedent(text).lstrip("\n")


THEME_SOURCES: Dict[str, str] = {
    "layout/theme.liquid": _dedent(
        """
        <!doctype html>
        <html>
          <body>
            {% section 'header' %}
            {{ content_for_layout }}
            <script src="{{ 'cart.js' | asset_url }}" defer></script>
          </body>
        </html>
        """
    ),
    "sections/header.liquid": _dedent(
        """
        <header class="site-header">
          {% render 'logo', size: 'large' %}
          {% if section.settings.show_menu %}
            <nav class="site-nav">
              {{ section.settings.menu | default: 'main' }}
            </nav>
          {% endif %}
        </header>
        {{ 'header.css' | asset_url | stylesheet_tag }}
        {% schema %}
        {
          "name": "Header",
          "settings": [
            {"type": "checkbox", "id": "show_menu", "label": "Show menu"},
            {"type": "image_picker", "id": "logo", "label": "Logo"}
          ],
          "blocks": [{"type": "link", "name": "Link"}],
          "presets": [{"name": "Default header"}]
        }
        {% endschema %}
        """
    ),
    "sections/main-product.liquid": _dedent(
        """
        <div class="product">
          {% render 'price', product: product %}
          <h1 class="product__title">{{ product.title }}</h1>
        </div>
        {% schema %}
        {"name": "Product information", "settings": []}
        {% endschema %}
        """
    ),
    "snippets/logo.liquid": _dedent(
        """
        <div class="logo">
          {{ settings.logo | image_url: width: 200 | image_tag }}
        </div>
        """
    ),
    "snippets/price.liquid": '<span class="price">{{ product.price | money }}</span>\n',
    "assets/header.css": _dedent(
        """
        .site-header {
          display: flex;
        }

        .site-nav a {
          color: red;
        }
        """
    ),
    "assets/cart.js": _dedent(
        """
        function addToCart(id) {
          return fetch('/cart/add.js', { method: 'POST', body: id });
        }

        const removeFromCart = (id) => {
          return fetch('/cart/change.js');
        };
        """
    ),
    "templates/product.json": _dedent(
        """
        {
          "sections": {
            "main": {"type": "main-product"}
          },
          "order": ["main"]
        }
        """
    ),
    "config/settings_data.json": '{"current": "Default"}\n',
}


def build_theme_files(sources: Dict[str, str] = THEME_SOURCES) -> List[FileRecord]:
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return [
        make_file_record(path, content, updated_at=base + timedelta(minutes=index))
        for index, (path, content) in enumerate(sorted(sources.items()))
    ]


@pytest.fixture()
def theme_files() -> List[FileRecord]:
    """In-memory records of a small synthetic storefront theme."""
    return build_theme_files()


@pytest.fixture()
def theme_root(tmp_path: Path) -> Path:
    """The same synthetic theme written to disk."""
    root = tmp_path / "theme"
    for path, content in THEME_SOURCES.items():
        target = root / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    return root
