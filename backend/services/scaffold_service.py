"""Scaffold generator: the complete file set of a published registry repository.

The output is a plain path -> content mapping. It is fed through the same
diff and object-building path as every later push, so creating a repository
and updating it share one code path.
"""

from __future__ import annotations

import json
import posixpath
from typing import TYPE_CHECKING, Any

import yaml

if TYPE_CHECKING:
    from backend.services.records import ItemRecord, RegistryRecord

REGISTRY_SCHEMA_URL = "https://ui.shadcn.com/schema/registry.json"
REGISTRY_ITEM_SCHEMA_URL = "https://ui.shadcn.com/schema/registry-item.json"
COMPONENTS_SCHEMA_URL = "https://ui.shadcn.com/schema.json"
BUILD_COMMAND = "npx shadcn@latest registry:build"

GITIGNORE = """node_modules/
public/r/
.next/
dist/
*.log
"""


def _dump_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


def build_item_json(item: ItemRecord) -> dict[str, Any]:
    """Build the registry-item document for one item.

    Optional fields are only emitted when they carry a value.
    """
    data: dict[str, Any] = {
        "$schema": REGISTRY_ITEM_SCHEMA_URL,
        "name": item.name,
        "type": item.type,
        "files": [
            {"path": f.path, "type": f.type, "content": f.content}
            | ({"target": f.target} if f.target else {})
            for f in item.files
        ],
    }
    if item.title:
        data["title"] = item.title
    if item.description:
        data["description"] = item.description
    if item.docs:
        data["docs"] = item.docs
    if item.dependencies:
        data["dependencies"] = item.dependencies
    if item.dev_dependencies:
        data["devDependencies"] = item.dev_dependencies
    if item.registry_dependencies:
        data["registryDependencies"] = item.registry_dependencies
    if any(item.css_vars.get(key) for key in ("theme", "light", "dark")):
        data["cssVars"] = item.css_vars
    if item.css:
        data["css"] = item.css
    if item.env_vars:
        data["envVars"] = item.env_vars
    if item.categories:
        data["categories"] = item.categories
    if item.meta:
        data["meta"] = item.meta
    return data


def build_registry_index(
    registry: RegistryRecord, items: list[ItemRecord], hosting_url: str | None = None
) -> dict[str, Any]:
    """Aggregate item metadata into the registry index, without file bodies."""
    index_items: list[dict[str, Any]] = []
    for item in items:
        entry = build_item_json(item)
        del entry["$schema"]
        entry["files"] = []
        index_items.append(entry)
    return {
        "$schema": REGISTRY_SCHEMA_URL,
        "name": registry.name,
        "homepage": registry.homepage or hosting_url or "",
        "items": index_items,
    }


def _package_json(registry: RegistryRecord) -> str:
    return _dump_json(
        {
            "name": registry.name,
            "version": "0.0.1",
            "private": True,
            "scripts": {"build": BUILD_COMMAND},
        }
    )


def _components_json() -> str:
    return _dump_json(
        {
            "$schema": COMPONENTS_SCHEMA_URL,
            "style": "new-york",
            "rsc": True,
            "tsx": True,
            "tailwind": {
                "config": "tailwind.config.ts",
                "css": "app/globals.css",
                "baseColor": "neutral",
                "cssVariables": True,
            },
            "aliases": {"components": "@/components", "utils": "@/lib/utils"},
        }
    )


def _tsconfig_json() -> str:
    return _dump_json({"compilerOptions": {"baseUrl": ".", "paths": {"@/*": ["./*"]}}})


def _deploy_workflow(branch: str) -> str:
    """GitHub Actions workflow rebuilding and republishing on every push to ``branch``."""
    workflow = {
        "name": "Build and Deploy Registry",
        "on": {"push": {"branches": [branch]}, "workflow_dispatch": None},
        "permissions": {"contents": "read", "pages": "write", "id-token": "write"},
        "concurrency": {"group": "pages", "cancel-in-progress": False},
        "jobs": {
            "build": {
                "runs-on": "ubuntu-latest",
                "steps": [
                    {"uses": "actions/checkout@v4"},
                    {"uses": "actions/setup-node@v4", "with": {"node-version": 20}},
                    {"run": BUILD_COMMAND},
                    {"uses": "actions/upload-pages-artifact@v3", "with": {"path": "./public"}},
                ],
            },
            "deploy": {
                "needs": "build",
                "runs-on": "ubuntu-latest",
                "environment": {
                    "name": "github-pages",
                    "url": "${{ steps.deployment.outputs.page_url }}",
                },
                "steps": [{"id": "deployment", "uses": "actions/deploy-pages@v4"}],
            },
        },
    }
    return yaml.safe_dump(workflow, sort_keys=False, default_flow_style=False)


def _readme(registry: RegistryRecord, hosting_url: str, branch: str) -> str:
    display_name = registry.display_name or registry.name
    description = registry.description or "A shadcn/ui component registry."
    slug = registry.slug
    return f"""# {display_name}

{description}

## Usage

Add components from this registry using the shadcn CLI:

```bash
npx shadcn@latest add "{hosting_url}/r/{{component-name}}.json"
```

Or configure as a namespace in your `components.json`:

```json
{{
  "registries": {{
    "{slug}": {{
      "url": "{hosting_url}/r"
    }}
  }}
}}
```

Then install components by name:

```bash
npx shadcn@latest add {slug}/{{component-name}}
```

## Development

Build the registry locally:

```bash
{BUILD_COMMAND}
```

Built files will be output to `public/r/`.

## Deployment

This registry auto-deploys to GitHub Pages on every push to `{branch}`.

Registry URL: {hosting_url}
"""


def item_file_path(item: ItemRecord, file_path: str) -> str:
    """Repository path of an item file: ``registry/<item>/<basename>``."""
    return f"registry/{item.name}/{posixpath.basename(file_path) or file_path}"


def generate_scaffold_files(
    registry: RegistryRecord,
    items: list[ItemRecord],
    hosting_url: str,
    branch: str = "main",
) -> dict[str, str]:
    """Produce every file of the registry repository.

    Raises ValueError when two files of the same item publish to one path.
    """
    hosting_url = hosting_url.rstrip("/")
    files: dict[str, str] = {
        "registry.json": _dump_json(build_registry_index(registry, items, hosting_url)),
    }
    for item in items:
        for item_file in item.files:
            path = item_file_path(item, item_file.path)
            if path in files:
                msg = f"Item {item.name!r} has two files published as {path!r}"
                raise ValueError(msg)
            files[path] = item_file.content
    files["package.json"] = _package_json(registry)
    files["components.json"] = _components_json()
    files["tsconfig.json"] = _tsconfig_json()
    files[".github/workflows/deploy.yml"] = _deploy_workflow(branch)
    files["README.md"] = _readme(registry, hosting_url, branch)
    files[".gitignore"] = GITIGNORE
    return files
