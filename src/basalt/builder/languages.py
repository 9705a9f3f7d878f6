"""Built-in language runtimes and the shell commands that provision them."""

from enum import Enum


class BuiltInLanguage(Enum):
    PYTHON3 = "python3"
    JAVA = "java"
    JAVASCRIPT = "javascript"
    RUST = "rust"

    @classmethod
    def lookup(cls, name: str) -> "BuiltInLanguage | None":
        normalized = name.strip().lower()
        aliases = {"python": "python3", "js": "javascript", "node": "javascript"}
        normalized = aliases.get(normalized, normalized)
        for member in cls:
            if member.value == normalized:
                return member
        return None

    def install_command(self, version: str = "latest") -> str | None:
        latest = version == "latest"
        match self:
            case BuiltInLanguage.PYTHON3:
                return "dnf install -y python3" if latest else f"dnf install -y python{version}"
            case BuiltInLanguage.JAVA:
                package = "java-latest-openjdk-devel" if latest else f"java-{version}-openjdk-devel"
                return f"dnf install -y {package}"
            case BuiltInLanguage.JAVASCRIPT:
                return "dnf install -y nodejs" if latest else f"dnf install -y nodejs{version}"
            case BuiltInLanguage.RUST:
                toolchain = "stable" if latest else version
                return (
                    "curl --proto '=https' --tlsv1.2 -sSf https://sh.rustup.rs"
                    f" | sh -s -- -y --profile minimal --default-toolchain {toolchain}"
                )
        return None

    def init_command(self, version: str = "latest") -> str | None:
        # Only rustup needs its environment sourced at container start.
        if self is BuiltInLanguage.RUST:
            return '. "$HOME/.cargo/env"'
        return None
