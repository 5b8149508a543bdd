"""
Function registry for omicnet.

Public entry points are decorated with ``register_function`` so they can be
looked up by alias (English or Chinese) or keyword, e.g.
``onet.find_function("wgcna")`` or ``omicnet --find-function cytoscape``.
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional, Callable, Any
from difflib import get_close_matches
import inspect
import json
from pathlib import Path


@dataclass
class FunctionEntry:
    function: Callable
    full_name: str
    aliases: List[str]
    category: str
    description: str
    examples: List[str] = field(default_factory=list)
    related: List[str] = field(default_factory=list)

    @property
    def short_name(self) -> str:
        return self.full_name.rsplit('.', 1)[-1]

    @property
    def signature(self) -> str:
        try:
            return str(inspect.signature(self.function))
        except (TypeError, ValueError):
            return "(...)"

    def keys(self) -> List[str]:
        return [k.lower() for k in self.aliases + [self.short_name, self.full_name]]

    def to_dict(self) -> Dict[str, Any]:
        record = asdict(self)
        record.pop('function')
        record.update(short_name=self.short_name, signature=self.signature,
                      docstring=inspect.getdoc(self.function) or "")
        return record

    def describe(self, verbose: bool = False) -> List[str]:
        lines = [f"📦 {self.full_name}",
                 f"   📝 {self.description}",
                 f"   🏷️  Aliases: {', '.join(self.aliases)}"]
        if verbose:
            lines.append(f"   🔧 {self.short_name}{self.signature}")
            lines.extend(f"      {example}" for example in self.examples)
            if self.related:
                lines.append(f"   🔗 Related: {', '.join(self.related)}")
        return lines


class FunctionRegistry:
    """
    Registry of the decorated functions and classes, keyed by lower-case alias.
    """

    def __init__(self):
        self._entries: Dict[str, FunctionEntry] = {}
        self._index: Dict[str, str] = {}

    def register(self,
                 func: Callable,
                 aliases: List[str],
                 category: str,
                 description: str,
                 examples: Optional[List[str]] = None,
                 related: Optional[List[str]] = None) -> Callable:
        """
        Add ``func`` under its aliases, its name and its dotted path.

        Returns the object unchanged. Aliases, category and description are required.
        """
        if not aliases or not all(alias.strip() for alias in aliases):
            raise ValueError("Function registration requires at least one non-empty alias.")
        if not category or not category.strip():
            raise ValueError("Function registration requires a category.")
        if not description or not description.strip():
            raise ValueError("Function registration requires a description.")

        entry = FunctionEntry(function=func,
                              full_name=f"{func.__module__}.{func.__name__}",
                              aliases=list(aliases),
                              category=category,
                              description=description,
                              examples=list(examples or []),
                              related=list(related or []))
        self._entries[entry.full_name] = entry
        for key in entry.keys():
            self._index[key] = entry.full_name
        return func

    def entries(self) -> List[FunctionEntry]:
        return list(self._entries.values())

    def find(self, query: str, threshold: float = 0.6) -> List[FunctionEntry]:
        """
        Exact key first, then close alias matches, then substring hits in aliases or descriptions.
        """
        query = query.lower().strip()
        names = []
        if query in self._index:
            names.append(self._index[query])
        names += [self._index[key] for key in get_close_matches(query, list(self._index), n=5, cutoff=threshold)]
        names += [entry.full_name for entry in self._entries.values()
                  if query in entry.description.lower() or any(query in a.lower() for a in entry.aliases)]
        return [self._entries[name] for name in dict.fromkeys(names)]

    def get_by_category(self, category: str) -> List[FunctionEntry]:
        return [entry for entry in self._entries.values() if entry.category == category]

    def list_categories(self) -> List[str]:
        return sorted({entry.category for entry in self._entries.values()})

    def format_results(self, results: List[FunctionEntry], verbose: bool = False) -> str:
        if not results:
            return "❌ No matching functions found."
        output = [f"🔍 Found {len(results)} matching function(s):"]
        for i, entry in enumerate(results, 1):
            lines = entry.describe(verbose)
            output.append(f"\n{i}. {lines[0]}")
            output.extend(lines[1:])
        return "\n".join(output)


_global_registry = FunctionRegistry()


def register_function(aliases: List[str],
                      category: str,
                      description: str,
                      examples: Optional[List[str]] = None,
                      related: Optional[List[str]] = None):
    """
    Decorator registering a function or class.

    The object is returned as it is, with a ``_registry_info`` dict attached.

    Examples
    --------
    >>> @register_function(
    ...     aliases=["wgcna", "co-expression"],
    ...     category="bulk",
    ...     description="Weighted gene co-expression network analysis"
    ... )
    ... class pyWGCNA:
    ...     pass
    """
    def decorator(func: Callable) -> Callable:
        _global_registry.register(func, aliases, category, description, examples, related)
        func._registry_info = {'aliases': aliases, 'category': category, 'description': description}
        return func

    return decorator


def find_function(query: str, verbose: bool = False) -> Optional[Callable]:
    """
    Print the functions matching ``query`` and return the best match.

    Examples
    --------
    >>> import omicnet as onet
    >>> onet.find_function("differential expression")
    >>> onet.find_function("cytoscape")
    """
    results = _global_registry.find(query)
    print(_global_registry.format_results(results, verbose=verbose))
    return results[0].function if results else None


def list_functions(category: Optional[str] = None) -> List[str]:
    """
    Print the registered functions, optionally of one category, and return their dotted names.
    """
    if category:
        results = _global_registry.get_by_category(category)
        print(f"📚 Functions in category '{category}':")
    else:
        results = _global_registry.entries()
        print(f"📚 All registered functions ({len(results)} total):")
    if not results:
        print("   No functions found.")
    for entry in sorted(results, key=lambda e: (e.category, e.full_name)):
        print(f"   • [{entry.category}] {entry.full_name}: {entry.description}")
    return [entry.full_name for entry in results]


def export_registry(filepath: Optional[str] = None) -> Dict[str, Any]:
    """
    The registry as a JSON-serialisable dict, also written to ``filepath`` when given.
    """
    entries = _global_registry.entries()
    payload = {
        'categories': {category: [e.full_name for e in entries if e.category == category]
                       for category in _global_registry.list_categories()},
        'functions': [entry.to_dict() for entry in entries],
    }
    if filepath is not None:
        Path(filepath).write_text(json.dumps(payload, indent=2, ensure_ascii=False))
    return payload
