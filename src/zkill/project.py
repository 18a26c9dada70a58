"""Detection of the development project in the current directory."""

import json
import logging
import re
from pathlib import Path

from zkill.errors import CommandError
from zkill.platforms.base import run_command

logger = logging.getLogger(__name__)

PROJECT_INDICATORS = (
    "package.json",
    "composer.json",
    "Gemfile",
    "requirements.txt",
    "pyproject.toml",
    "go.mod",
    "Cargo.toml",
    "pom.xml",
    ".git",
    "Makefile",
)

# Checked in order; the first match wins
NODE_FRAMEWORKS = (
    ("next", "Next.js"),
    ("react", "React"),
    ("vue", "Vue.js"),
    ("@angular/core", "Angular"),
    ("express", "Express"),
    ("fastify", "Fastify"),
    ("@nestjs/core", "NestJS"),
)

MANIFEST_TYPES = (
    ("requirements.txt", "Python"),
    ("pyproject.toml", "Python"),
    ("Gemfile", "Ruby"),
    ("go.mod", "Go"),
    ("Cargo.toml", "Rust"),
    ("composer.json", "PHP"),
    ("pom.xml", "Java"),
)

COMMON_PORTS = {
    "Next.js": [3000, 3001],
    "React": [3000, 3001, 8080],
    "Vue.js": [8080, 8081],
    "Angular": [4200, 4201],
    "Express": [3000, 8000, 8080],
    "Fastify": [3000, 8000],
    "NestJS": [3000, 8000],
    "Python": [8000, 5000, 8080],
    "Ruby": [3000, 4567],
    "Go": [8080, 8000],
    "PHP": [8000, 8080],
    "Java": [8080, 8000],
}
DEFAULT_PORTS = [3000, 8000, 8080]

_TOML_NAME = re.compile(r'^\s*name\s*=\s*"([^"]+)"', re.MULTILINE)
_GO_MODULE = re.compile(r"^module\s+(\S+)", re.MULTILINE)


def _read_json(path: Path) -> dict | None:
    """Load a JSON file, or None when missing or invalid."""
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.debug("Could not read %s: %s", path, exc)
        return None
    return data if isinstance(data, dict) else None


def _read_text(path: Path) -> str | None:
    """Read a text file, or None when missing or unreadable."""
    if not path.exists():
        return None
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        logger.debug("Could not read %s: %s", path, exc)
        return None


class ProjectDetector:
    """Identifies the project rooted at a directory (the cwd by default)."""

    def __init__(self, cwd: str | Path | None = None) -> None:
        self._root = Path(cwd) if cwd else Path.cwd()

    @property
    def project_path(self) -> str:
        """Absolute path of the project root."""
        return str(self._root)

    def is_project_directory(self) -> bool:
        """Whether the root holds a known project manifest."""
        return any((self._root / name).exists() for name in PROJECT_INDICATORS)

    @property
    def project_name(self) -> str:
        """Best available project name, falling back to the directory name."""
        for source in (
            self._name_from_package_json,
            self._name_from_composer_json,
            self._name_from_cargo_toml,
            self._name_from_go_mod,
            self._name_from_pyproject,
            self._name_from_git,
        ):
            name = source()
            if name:
                return name
        return self._root.name

    @property
    def project_type(self) -> str | None:
        """Framework or language of the project, if recognised."""
        package_json = self._root / "package.json"
        if package_json.exists():
            return self._node_project_type(package_json)
        for manifest, project_type in MANIFEST_TYPES:
            if (self._root / manifest).exists():
                return project_type
        return None

    def common_ports(self) -> list[int]:
        """Ports the project type usually serves on."""
        return list(COMMON_PORTS.get(self.project_type or "", DEFAULT_PORTS))

    def _node_project_type(self, package_json: Path) -> str:
        """Pick the Node framework from package.json dependencies."""
        pkg = _read_json(package_json) or {}
        deps = {**(pkg.get("dependencies") or {}), **(pkg.get("devDependencies") or {})}
        for dependency, framework in NODE_FRAMEWORKS:
            if dependency in deps:
                return framework
        return "Node.js"

    def _name_from_package_json(self) -> str | None:
        """Name field from package.json."""
        pkg = _read_json(self._root / "package.json")
        return pkg.get("name") if pkg else None

    def _name_from_composer_json(self) -> str | None:
        """Package part of the composer.json vendor/package name."""
        composer = _read_json(self._root / "composer.json")
        name = composer.get("name") if composer else None
        # vendor/package
        return name.split("/")[-1] if isinstance(name, str) else None

    def _name_from_cargo_toml(self) -> str | None:
        """First ``name = ...`` entry of Cargo.toml."""
        content = _read_text(self._root / "Cargo.toml")
        match = _TOML_NAME.search(content) if content else None
        return match.group(1) if match else None

    def _name_from_go_mod(self) -> str | None:
        """Last path segment of the go.mod module."""
        content = _read_text(self._root / "go.mod")
        match = _GO_MODULE.search(content) if content else None
        return match.group(1).split("/")[-1] if match else None

    def _name_from_pyproject(self) -> str | None:
        """First ``name = ...`` entry of pyproject.toml."""
        content = _read_text(self._root / "pyproject.toml")
        match = _TOML_NAME.search(content) if content else None
        return match.group(1) if match else None

    def _name_from_git(self) -> str | None:
        """Repository name from the origin remote URL."""
        try:
            url = run_command(
                ["git", "-C", str(self._root), "config", "--get", "remote.origin.url"]
            ).strip()
        except CommandError:
            return None
        # https://github.com/user/repo.git or git@github.com:user/repo.git
        name = url.rstrip("/").split("/")[-1].split(":")[-1]
        return name.removesuffix(".git") or None
