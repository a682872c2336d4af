from __future__ import annotations

import textwrap

from themeagent.parsers.references import detect_references, section_types
from themeagent.theme_map.graph import ThemeDependencyGraph


def test_liquid_references_in_first_seen_order() -> None:
    content = textwrap.dedent(
        """
        {%- render 'card', product: product -%}
        {% include "legacy" %}
        {% section 'footer' %}
        {{ 'theme.css' | asset_url | stylesheet_tag }}
        {% render 'card' %}
        """
    )

    assert detect_references("sections/collection.liquid", content) == [
        "snippets/card.liquid",
        "snippets/legacy.liquid",
        "sections/footer.liquid",
        "assets/theme.css",
    ]


def test_json_templates_reference_their_sections() -> None:
    content = '/* generated */\n{"sections": {"a": {"type": "hero"}, "b": {"type": "faq"}, "c": {}}, "order": ["a"]}'

    assert detect_references("templates/index.json", content) == ["sections/hero.liquid", "sections/faq.liquid"]
    assert detect_references("config/settings_data.json", content) == []
    assert section_types("[1, 2]") == []
    assert section_types("{broken") == []


def test_malformed_json_templates_fall_back_to_a_lexical_scan() -> None:
    content = (
        "/* edited by hand */\n"
        '{"sections": {"main": {"type": "main-product", "blocks": {"t": {"type": "title"}},},\n'
        '  "related": {"type": "related-products", "settings": {"heading": "type: \\"x\\""}}'
    )

    assert section_types(content) == ["main-product", "related-products"]
    assert detect_references("templates/product.json", content) == [
        "sections/main-product.liquid",
        "sections/related-products.liquid",
    ]


def test_stubs_and_other_files_have_no_references() -> None:
    assert detect_references("sections/a.liquid", "[1200 chars]") == []
    assert detect_references("assets/app.js", "render('card')") == []


def test_graph_tracks_dependents_between_known_files() -> None:
    graph = ThemeDependencyGraph.from_files(
        [
            ("sections/header.liquid", "{% render 'logo' %}{% render 'icon' %}"),
            ("sections/footer.liquid", "{% render 'logo' %}"),
            ("snippets/logo.liquid", "<img>"),
        ]
    )

    assert graph.dependencies("sections/header.liquid") == ["snippets/logo.liquid"]
    assert graph.dependents("snippets/logo.liquid") == ["sections/footer.liquid", "sections/header.liquid"]

    graph.index_file("snippets/icon.liquid", "<svg></svg>")
    assert graph.dependents("snippets/icon.liquid") == ["sections/header.liquid"]

    graph.index_file("sections/footer.liquid", "<footer></footer>")
    graph.remove("sections/header.liquid")
    assert graph.dependents("snippets/logo.liquid") == []
    assert "sections/header.liquid" not in graph
    assert graph.paths() == ["sections/footer.liquid", "snippets/icon.liquid", "snippets/logo.liquid"]
