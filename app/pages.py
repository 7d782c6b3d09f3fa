"""Server-rendered HTML pages."""

from __future__ import annotations

from typing import Any

from jinja2 import DictLoader, Environment, select_autoescape

from catalog.profile_list import ProfileTable

_LAYOUT = """<!doctype html>
<html lang="en">
<head><meta charset="utf-8"><title>{{ title }}</title></head>
<body>
<div class="mx-auto p-4">
{% block content %}{% endblock %}
</div>
</body>
</html>
"""

_USERS = """{% extends "layout.html" %}
{% block content %}
{% if table.status == "ok" %}
<h1 class="mb-4 text-2xl font-semibold">User Information</h1>
<table class="min-w-full divide-y divide-gray-200">
  <thead class="bg-gray-50">
    <tr>{% for column in table.columns %}<th scope="col">{{ column }}</th>{% endfor %}</tr>
  </thead>
  <tbody>
  {% for row in table.rows %}
    <tr data-id="{{ row.id }}"><td>{{ row.email }}</td><td>{{ row.display_name }}</td><td>{{ row.biography }}</td></tr>
  {% endfor %}
  </tbody>
</table>
{% elif table.status == "empty" %}
<h1 class="mb-4 text-2xl font-semibold">User Information</h1>
<p>{{ table.message }}</p>
{% else %}
<h3 class="text-lg font-medium">Error</h3>
<p>{{ table.message }}</p>
{% endif %}
{% endblock %}
"""

_SPECIES = """{% extends "layout.html" %}
{% block content %}
<h1 class="mb-4 text-2xl font-semibold">Species List</h1>
{% if error %}
<h3 class="text-lg font-medium">Error</h3>
<p>{{ error }}</p>
{% elif not species %}
<p>No species found.</p>
{% else %}
<ul>
{% for item in species %}
  <li data-id="{{ item.id }}">
    <strong>{{ item.scientific_name }}</strong>{% if item.common_name %} ({{ item.common_name }}){% endif %}
    {% if item.endangered %}<span class="badge">Endangered</span>{% endif %}
    <p>{{ (item.description or "")[:150] }}</p>
  </li>
{% endfor %}
</ul>
{% endif %}
{% endblock %}
"""

_TEMPLATES = {"layout.html": _LAYOUT, "users.html": _USERS, "species.html": _SPECIES}


_ENV = Environment(
    loader=DictLoader(_TEMPLATES),
    autoescape=select_autoescape(default=True, default_for_string=True),
)


def render_page(name: str, context: dict[str, Any]) -> str:
    return _ENV.get_template(name).render(**context)


def render_users_page(table: ProfileTable) -> str:
    return render_page("users.html", {"title": "Users", "table": table})


def render_species_page(species: list[dict], error: str | None = None) -> str:
    return render_page("species.html", {"title": "Species", "species": species, "error": error})
