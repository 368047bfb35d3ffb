import posixpath
import re
import shlex
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .config import Settings
from .errors import UnsupportedLanguage


JAVA_CLASS_RE = re.compile(r"public\s+class\s+(\w+)")


def java_class_name(code: str) -> str:
    m = JAVA_CLASS_RE.search(code)
    return m.group(1) if m else "Main"


def _python_command(workdir: str, file_name: str) -> str:
    return f"python3 -u {shlex.quote(posixpath.join(workdir, file_name))}"


def _javascript_command(workdir: str, file_name: str) -> str:
    return f"node {shlex.quote(posixpath.join(workdir, file_name))}"


def _cpp_command(workdir: str, file_name: str) -> str:
    binary = posixpath.join(workdir, posixpath.splitext(file_name)[0])
    return (
        f"cd {shlex.quote(workdir)} && "
        f"g++ -std=c++20 -o {shlex.quote(binary)} {shlex.quote(file_name)} && "
        f"{shlex.quote(binary)}"
    )


def _java_command(workdir: str, file_name: str) -> str:
    class_name = posixpath.splitext(posixpath.basename(file_name))[0]
    class_path = posixpath.join(workdir, posixpath.dirname(file_name)).rstrip("/")
    return (
        f"cd {shlex.quote(workdir)} && "
        f"javac {shlex.quote(file_name)} && "
        f"java -cp {shlex.quote(class_path)} {shlex.quote(class_name)}"
    )


@dataclass(frozen=True)
class LanguageProfile:
    name: str
    extension: str
    build_command: Callable[[str, str], str]
    file_name: Callable[[str], str]
    # compiled binaries have to run from the tmpfs
    needs_exec_tmp: bool = False
    aliases: List[str] = field(default_factory=list)


LANG_CONFIG: Dict[str, LanguageProfile] = {
    "python": LanguageProfile(
        name="python",
        extension=".py",
        build_command=_python_command,
        file_name=lambda code: "main.py",
    ),
    "javascript": LanguageProfile(
        name="javascript",
        extension=".js",
        build_command=_javascript_command,
        file_name=lambda code: "main.js",
        aliases=["js", "node"],
    ),
    "java": LanguageProfile(
        name="java",
        extension=".java",
        build_command=_java_command,
        file_name=lambda code: f"{java_class_name(code)}.java",
        needs_exec_tmp=True,
    ),
    "cpp": LanguageProfile(
        name="cpp",
        extension=".cpp",
        build_command=_cpp_command,
        file_name=lambda code: "main.cpp",
        needs_exec_tmp=True,
        aliases=["c++"],
    ),
}

_ALIASES = {
    alias: profile.name for profile in LANG_CONFIG.values() for alias in profile.aliases
}


def get_profile(language: Optional[str]) -> LanguageProfile:
    lang = (language or "").strip().lower()
    lang = _ALIASES.get(lang, lang)
    if lang not in LANG_CONFIG:
        raise UnsupportedLanguage(language or "")
    return LANG_CONFIG[lang]


def image_for(profile: LanguageProfile, settings: Settings) -> str:
    return settings.image_for(profile.name)
