"""TextMate grammar tokenizer.

Grammars are compiled to oniguruma regex sets (via `onigurumacffi`) and run
line by line, carrying the rule stack across lines, to produce one
`LexicalToken` per region with its full scope stack.
"""

from __future__ import annotations

import json
import logging
import plistlib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Mapping, Protocol

import onigurumacffi

from tintscope.exceptions import GrammarLoadError
from tintscope.overlay.merge import split_lines
from tintscope.overlay.model import LexicalToken

logger = logging.getLogger(__name__)

Scope = tuple[str, ...]
Captures = tuple[tuple[int, "Rule"], ...]


def _split_name(value: object) -> Scope:
    if not isinstance(value, str):
        return ()
    return tuple(value.split())


def _captures(dct: Mapping[str, object], key: str) -> Captures:
    raw = dct.get(key)
    if not isinstance(raw, dict):
        return ()
    return tuple(
        (int(group), Rule.from_dct(rule))
        for group, rule in raw.items()
        if str(group).isdigit() and isinstance(rule, dict)
    )


@dataclass(frozen=True, eq=False)
class Rule:
    name: Scope = ()
    match: str | None = None
    begin: str | None = None
    end: str | None = None
    while_: str | None = None
    content_name: Scope = ()
    captures: Captures = ()
    begin_captures: Captures = ()
    end_captures: Captures = ()
    while_captures: Captures = ()
    include: str | None = None
    patterns: tuple[Rule, ...] = ()

    @classmethod
    def from_dct(cls, dct: Mapping[str, object]) -> Rule:
        begin = dct.get("begin")
        end = dct.get("end")
        while_ = dct.get("while")
        captures = _captures(dct, "captures")
        begin_captures = _captures(dct, "beginCaptures")
        end_captures = _captures(dct, "endCaptures")
        while_captures = _captures(dct, "whileCaptures")
        # `captures` on a begin/end (or begin/while) rule applies to both ends.
        if begin and end and captures:
            begin_captures = end_captures = captures
            captures = ()
        elif begin and while_ and captures:
            begin_captures = while_captures = captures
            captures = ()
        raw_patterns = dct.get("patterns")
        patterns = (
            tuple(cls.from_dct(item) for item in raw_patterns if isinstance(item, dict))
            if isinstance(raw_patterns, list)
            else ()
        )
        include = dct.get("include")
        match = dct.get("match")
        return cls(
            name=_split_name(dct.get("name")),
            match=match if isinstance(match, str) else None,
            begin=begin if isinstance(begin, str) else None,
            end=end if isinstance(end, str) else None,
            while_=while_ if isinstance(while_, str) else None,
            content_name=_split_name(dct.get("contentName")),
            captures=captures,
            begin_captures=begin_captures,
            end_captures=end_captures,
            while_captures=while_captures,
            include=include if isinstance(include, str) else None,
            patterns=patterns,
        )


@dataclass(frozen=True, eq=False)
class Grammar:
    scope_name: str
    patterns: tuple[Rule, ...]
    repository: Mapping[str, Rule] = field(default_factory=dict)

    @classmethod
    def from_dct(cls, data: Mapping[str, object], *, scope_name: str | None = None) -> Grammar:
        raw_patterns = data.get("patterns")
        raw_repository = data.get("repository")
        name = scope_name or data.get("scopeName")
        if not isinstance(name, str) or not name:
            raise GrammarLoadError("Grammar has no scopeName")
        return cls(
            scope_name=name,
            patterns=tuple(
                Rule.from_dct(item)
                for item in (raw_patterns if isinstance(raw_patterns, list) else [])
                if isinstance(item, dict)
            ),
            repository={
                key: Rule.from_dct(value)
                for key, value in (
                    raw_repository.items() if isinstance(raw_repository, dict) else ()
                )
                if isinstance(value, dict)
            },
        )

    @classmethod
    def parse(cls, path: Path, *, scope_name: str | None = None) -> Grammar:
        try:
            raw = path.read_bytes()
        except OSError as exc:
            raise GrammarLoadError(
                f"Failed to read grammar {path}: {exc}", scope_name=scope_name
            ) from exc
        try:
            if path.suffix in {".tmLanguage", ".plist"}:
                data = plistlib.loads(raw)
            else:
                data = json.loads(raw.decode("utf-8"))
        except (ValueError, plistlib.InvalidFileException) as exc:
            raise GrammarLoadError(
                f"Failed to parse grammar {path}: {exc}", scope_name=scope_name
            ) from exc
        if not isinstance(data, dict):
            raise GrammarLoadError(f"Grammar {path} is not an object", scope_name=scope_name)
        return cls.from_dct(data, scope_name=scope_name)


@dataclass(frozen=True)
class Region:
    start: int
    end: int
    scope: Scope


@dataclass(frozen=True)
class Entry:
    scope: Scope
    rule: CompiledRule
    reg: object | None


@dataclass(frozen=True)
class State:
    entries: tuple[Entry, ...]
    while_stack: tuple[tuple[WhileRule, int], ...] = ()

    @classmethod
    def root(cls, entry: Entry) -> State:
        return cls((entry,))

    @property
    def cur(self) -> Entry:
        return self.entries[-1]

    def push(self, entry: Entry) -> State:
        return replace(self, entries=(*self.entries, entry))

    def pop(self) -> State:
        return replace(self, entries=self.entries[:-1])

    def push_while(self, rule: WhileRule, entry: Entry) -> State:
        entries = (*self.entries, entry)
        return State(entries, (*self.while_stack, (rule, len(entries))))

    def pop_while(self) -> State:
        return State(self.entries[:-1], self.while_stack[:-1])


SearchResult = tuple[State, int, tuple[Region, ...]]


class CompiledRule(Protocol):
    name: Scope

    def start(self, compiler: Compiler, match, state: State) -> tuple[State, tuple[Region, ...]]:
        ...

    def search(self, compiler: Compiler, state: State, line: str, pos: int) -> SearchResult | None:
        ...


def _inner_capture_parse(
    compiler: Compiler, start: int, text: str, scope: Scope, rule: CompiledRule
) -> tuple[Region, ...]:
    state = State.root(Entry(scope + rule.name, rule, None))
    _, regions = tokenize_line(compiler, state, text)
    return tuple(replace(r, start=r.start + start, end=r.end + start) for r in regions)


def _apply_captures(
    compiler: Compiler, scope: Scope, match, captures: Captures
) -> tuple[Region, ...]:
    regions: list[Region] = []
    pos, pos_end = match.span()
    for group, raw_rule in captures:
        try:
            group_text = match[group]
        except IndexError:
            continue
        if not group_text:
            continue
        rule = compiler.compile_rule(raw_rule)
        start, end = match.span(group)
        if start < pos:
            # Nested capture inside a region that was already emitted.
            j = len(regions) - 1
            while j > 0 and start < regions[j - 1].end:
                j -= 1
            old = regions[j]
            new: list[Region] = []
            if start > old.start:
                new.append(replace(old, end=start))
            new.extend(_inner_capture_parse(compiler, start, group_text, old.scope, rule))
            if end < old.end:
                new.append(replace(old, start=end))
            regions[j : j + 1] = new
        else:
            if start > pos:
                regions.append(Region(pos, start, scope))
            regions.extend(_inner_capture_parse(compiler, start, group_text, scope, rule))
            pos = end
    if pos < pos_end:
        regions.append(Region(pos, pos_end, scope))
    return tuple(regions)


def _do_regset(
    idx: int, match, rule, compiler: Compiler, state: State, pos: int
) -> SearchResult | None:
    if match is None:
        return None
    regions: list[Region] = []
    if match.start() > pos:
        regions.append(Region(pos, match.start(), state.cur.scope))
    target = compiler.compile_rule(rule.u_rules[idx])
    state, started = target.start(compiler, match, state)
    regions.extend(started)
    return state, match.end(), tuple(regions)


@dataclass(frozen=True, eq=False)
class PatternRule:
    name: Scope
    regset: object
    u_rules: tuple[Rule, ...]

    def start(self, compiler, match, state):
        raise AssertionError(f"pattern rule cannot start a match: {self.name}")

    def search(self, compiler, state, line, pos):
        idx, match = self.regset.search(line, pos)
        return _do_regset(idx, match, self, compiler, state, pos)


@dataclass(frozen=True, eq=False)
class MatchRule:
    name: Scope
    captures: Captures

    def start(self, compiler, match, state):
        scope = state.cur.scope + self.name
        return state, _apply_captures(compiler, scope, match, self.captures)

    def search(self, compiler, state, line, pos):
        raise AssertionError(f"match rule cannot be searched: {self.name}")


@dataclass(frozen=True, eq=False)
class EndRule:
    name: Scope
    content_name: Scope
    begin_captures: Captures
    end_captures: Captures
    end: str
    regset: object
    u_rules: tuple[Rule, ...]

    def start(self, compiler, match, state):
        scope = state.cur.scope + self.name
        end = compiler.compile_regex(match.expand(self.end))
        state = state.push(Entry(scope + self.content_name, self, end))
        return state, _apply_captures(compiler, scope, match, self.begin_captures)

    def search(self, compiler, state, line, pos):
        end_match = state.cur.reg.search(line, pos)

        def _end() -> SearchResult:
            regions: list[Region] = []
            if end_match.start() > pos:
                regions.append(Region(pos, end_match.start(), state.cur.scope))
            regions.extend(
                _apply_captures(compiler, state.cur.scope, end_match, self.end_captures)
            )
            return state.pop(), end_match.end(), tuple(regions)

        if end_match is not None and end_match.start() == pos:
            return _end()
        idx, match = self.regset.search(line, pos)
        if end_match is not None and (match is None or end_match.start() < match.start()):
            return _end()
        return _do_regset(idx, match, self, compiler, state, pos)


@dataclass(frozen=True, eq=False)
class WhileRule:
    name: Scope
    content_name: Scope
    begin_captures: Captures
    while_captures: Captures
    while_: str
    regset: object
    u_rules: tuple[Rule, ...]

    def start(self, compiler, match, state):
        scope = state.cur.scope + self.name
        while_ = compiler.compile_regex(match.expand(self.while_))
        state = state.push_while(self, Entry(scope + self.content_name, self, while_))
        return state, _apply_captures(compiler, scope, match, self.begin_captures)

    def continues(self, compiler, state, line, pos):
        match = state.cur.reg.match(line, pos)
        if match is None:
            return None
        return match.end(), _apply_captures(
            compiler, state.cur.scope, match, self.while_captures
        )

    def search(self, compiler, state, line, pos):
        idx, match = self.regset.search(line, pos)
        return _do_regset(idx, match, self, compiler, state, pos)


class Compiler:
    def __init__(self, grammar: Grammar, grammars: Mapping[str, Grammar]) -> None:
        self._root_scope = grammar.scope_name
        self._grammars = grammars
        self._rule_grammar: dict[Rule, Grammar] = {}
        self._compiled: dict[Rule, CompiledRule] = {}
        self._pattern_cache: dict[tuple[int, tuple[int, ...]], tuple[list[str], tuple[Rule, ...]]] = {}
        self._regex_cache: dict[str, object] = {}
        self._missing: set[str] = set()
        self.root = self._compile_root(grammar)

    def compile_regex(self, pattern: str):
        compiled = self._regex_cache.get(pattern)
        if compiled is None:
            compiled = self._regex_cache[pattern] = onigurumacffi.compile(pattern)
        return compiled

    def _warn_missing(self, what: str) -> tuple[list[str], tuple[Rule, ...]]:
        if what not in self._missing:
            self._missing.add(what)
            logger.warning("Unresolved grammar include: %s", what)
        return [], ()

    def _include(self, grammar: Grammar, ref: str) -> tuple[list[str], tuple[Rule, ...]]:
        if ref == "$self":
            return self._patterns(grammar, grammar.patterns)
        if ref == "$base":
            return self._include(self._grammars[self._root_scope], "$self")
        if ref.startswith("#"):
            rule = grammar.repository.get(ref[1:])
            if rule is None:
                return self._warn_missing(f"{grammar.scope_name}{ref}")
            return self._patterns(grammar, (rule,))
        scope, _, key = ref.partition("#")
        other = self._grammars.get(scope)
        if other is None:
            return self._warn_missing(scope)
        return self._include(other, f"#{key}" if key else "$self")

    def _patterns(
        self, grammar: Grammar, rules: tuple[Rule, ...]
    ) -> tuple[list[str], tuple[Rule, ...]]:
        key = (id(grammar), tuple(id(rule) for rule in rules))
        cached = self._pattern_cache.get(key)
        if cached is not None:
            return cached
        # Guard against self-recursive includes while this entry is built.
        self._pattern_cache[key] = ([], ())
        regs: list[str] = []
        found: list[Rule] = []
        for rule in rules:
            if rule.include is not None:
                sub_regs, sub_rules = self._include(grammar, rule.include)
            elif rule.match is None and rule.begin is None and rule.patterns:
                sub_regs, sub_rules = self._patterns(grammar, rule.patterns)
            elif rule.match is not None:
                sub_regs, sub_rules = [rule.match], (rule,)
                self._rule_grammar[rule] = grammar
            elif rule.begin is not None:
                sub_regs, sub_rules = [rule.begin], (rule,)
                self._rule_grammar[rule] = grammar
            else:
                continue
            regs.extend(sub_regs)
            found.extend(sub_rules)
        result = (regs, tuple(found))
        self._pattern_cache[key] = result
        return result

    def _captures_ref(self, grammar: Grammar, captures: Captures) -> Captures:
        for _, rule in captures:
            self._rule_grammar[rule] = grammar
        return captures

    def _compile_root(self, grammar: Grammar) -> PatternRule:
        regs, rules = self._patterns(grammar, grammar.patterns)
        return PatternRule((grammar.scope_name,), onigurumacffi.compile_regset(*regs), rules)

    def _compile_rule(self, grammar: Grammar, rule: Rule) -> CompiledRule:
        if rule.match is not None:
            return MatchRule(rule.name, self._captures_ref(grammar, rule.captures))
        regs, rules = self._patterns(grammar, rule.patterns)
        regset = onigurumacffi.compile_regset(*regs)
        if rule.begin is not None and rule.end is not None:
            return EndRule(
                rule.name,
                rule.content_name,
                self._captures_ref(grammar, rule.begin_captures),
                self._captures_ref(grammar, rule.end_captures),
                rule.end,
                regset,
                rules,
            )
        if rule.begin is not None and rule.while_ is not None:
            return WhileRule(
                rule.name,
                rule.content_name,
                self._captures_ref(grammar, rule.begin_captures),
                self._captures_ref(grammar, rule.while_captures),
                rule.while_,
                regset,
                rules,
            )
        return PatternRule(rule.name, regset, rules)

    def compile_rule(self, rule: Rule) -> CompiledRule:
        compiled = self._compiled.get(rule)
        if compiled is None:
            grammar = self._rule_grammar.get(rule, self._grammars[self._root_scope])
            compiled = self._compiled[rule] = self._compile_rule(grammar, rule)
        return compiled


def tokenize_line(compiler: Compiler, state: State, line: str) -> tuple[State, tuple[Region, ...]]:
    regions: list[Region] = []
    pos = 0

    while_stack: list[tuple[WhileRule, int]] = []
    for while_rule, idx in state.while_stack:
        while_stack.append((while_rule, idx))
        while_state = State(state.entries[:idx], tuple(while_stack))
        result = while_rule.continues(compiler, while_state, line, pos)
        if result is None:
            state = while_state.pop_while()
            break
        pos, while_regions = result
        regions.extend(while_regions)

    search = state.cur.rule.search(compiler, state, line, pos)
    while search is not None:
        new_state, new_pos, found = search
        regions.extend(found)
        if new_pos == pos and new_state == state:
            # Zero-width match that leaves the stack unchanged.
            break
        state, pos = new_state, new_pos
        search = state.cur.rule.search(compiler, state, line, pos)

    if pos < len(line):
        regions.append(Region(pos, len(line), state.cur.scope))
    return state, tuple(regions)


class TextMateTokenizer:
    """Tokenize documents with a main grammar plus embedded-language grammars."""

    def __init__(
        self,
        grammar_path: Path,
        scope_name: str,
        extra_grammars: Mapping[str, Path] | None = None,
    ) -> None:
        grammars: dict[str, Grammar] = {
            scope_name: Grammar.parse(grammar_path, scope_name=scope_name)
        }
        for extra_scope, path in (extra_grammars or {}).items():
            if not path.exists():
                logger.warning(
                    "Extra grammar for scope '%s' not found at '%s'", extra_scope, path
                )
                continue
            grammars[extra_scope] = Grammar.parse(path, scope_name=extra_scope)
        self.scope_name = scope_name
        try:
            self.compiler = Compiler(grammars[scope_name], grammars)
        except onigurumacffi.OnigError as exc:
            raise GrammarLoadError(
                f"Failed to compile grammar {scope_name}: {exc}", scope_name=scope_name
            ) from exc

    def tokenize(self, content: str) -> list[LexicalToken]:
        compiler = self.compiler
        state = State.root(Entry(compiler.root.name, compiler.root, None))
        tokens: list[LexicalToken] = []
        for line_no, line in enumerate(split_lines(content)):
            try:
                # Grammars expect the line terminator to be present.
                state, regions = tokenize_line(compiler, state, f"{line}\n")
            except onigurumacffi.OnigError as exc:
                # Nested rules compile on first use.
                raise GrammarLoadError(
                    f"Failed to compile grammar {self.scope_name} at line {line_no + 1}: {exc}",
                    scope_name=self.scope_name,
                ) from exc
            for region in regions:
                end = min(region.end, len(line))
                if region.start >= end:
                    continue
                tokens.append(LexicalToken(line_no, region.start, end, region.scope))
        return tokens
