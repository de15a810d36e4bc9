import re
from pathlib import PurePosixPath
from typing import Protocol

PY_IMPORT = re.compile(r"^(?:from[ \t]+([\.\w]+)[ \t]+)?import[ \t]+([\w \t,\.]+)", re.MULTILINE)
PY_SYMBOL = re.compile(r"^(?:async\s+)?(def|class)\s+([A-Za-z_]\w*)", re.MULTILINE)

JS_IMPORT = re.compile(r"import\s+.*?from\s+[\"']([\.\/\w\-@]+)[\"']")
JS_SYMBOL = re.compile(
    r"(?:export\s+)?(?:default\s+)?(?:(function|class)\s+([A-Za-z_$][\w$]*)"
    r"|const\s+([A-Z][\w$]*)\s*=\s*(?:\([^)]*\)|[\w$]*)\s*=>)"
)

JS_EXTENSIONS = {".js", ".jsx", ".ts", ".tsx", ".mjs"}


class StructureParser(Protocol):
    def parse(self, files: dict[str, str]) -> list[dict]:
        ...


class RegexStructureParser:
    """
    Lightweight structural parse: one component per file, with its
    top-level symbols and relative imports.
    """

    def parse(self, files: dict[str, str]) -> list[dict]:
        return [self.parse_file(path, content) for path, content in files.items()]

    def parse_file(self, path: str, content: str) -> dict:
        pure = PurePosixPath(path)
        ext = pure.suffix.lower()
        symbols: list[dict] = []
        imports: list[str] = []

        if ext == ".py":
            for kind, name in PY_SYMBOL.findall(content):
                symbols.append({"name": name, "type": "class" if kind == "class" else "function"})
            for module, names in PY_IMPORT.findall(content):
                if module.startswith("."):
                    imports.append(module)
                elif not module:
                    imports.extend(n.strip() for n in names.split(",") if n.strip())
                else:
                    imports.append(module)
        elif ext in JS_EXTENSIONS:
            for kind, name, arrow_name in JS_SYMBOL.findall(content):
                if arrow_name:
                    symbols.append({"name": arrow_name, "type": "component"})
                else:
                    symbols.append({"name": name, "type": kind})
            imports.extend(JS_IMPORT.findall(content))

        return {
            "name": pure.stem,
            "type": "module",
            "filePath": path,
            "language": ext[1:] if ext else "text",
            "symbols": symbols,
            "imports": imports,
            "lines": content.count("\n") + 1 if content else 0,
        }
