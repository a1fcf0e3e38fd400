"""Caddyfile document model, formatter, parser and renderer.

The formatter is the only place Caddyfile text is produced: one directive per
line, one tab per nesting level, ``{``/``}`` for blocks. ``parse_caddyfile``
reads that same grammar back, so ``format_caddyfile(parse_caddyfile(text))``
reproduces formatted text exactly.
"""

from dataclasses import dataclass, field

ACME_CHALLENGE_PATH = "/.well-known/acme-challenge/*"

SECURITY_HEADERS = (
    ("X-Content-Type-Options", "nosniff"),
    ("X-Frame-Options", "DENY"),
    ("X-XSS-Protection", "1; mode=block"),
    ("Referrer-Policy", "strict-origin-when-cross-origin"),
)


class Quoted(str):
    """An argument that is always written in double quotes."""


@dataclass
class Directive:
    name: str
    args: list[str] = field(default_factory=list)
    matcher: str | None = None
    block: list["Directive"] | None = None
    raw: bool = False

    @classmethod
    def verbatim(cls, line):
        """A caller-supplied line emitted exactly as given."""
        return cls(name=line, raw=True)


@dataclass
class SiteBlock:
    address: str
    directives: list[Directive] = field(default_factory=list)


@dataclass
class Caddyfile:
    sites: list[SiteBlock] = field(default_factory=list)


# ── formatting ──────────────────────────────────────────────────────


def _needs_quotes(token):
    return token == "" or token.startswith("#") or any(c.isspace() or c in '"{}' for c in token)


def _format_token(token):
    if isinstance(token, Quoted) or _needs_quotes(token):
        escaped = token.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return token


def _format_directive(directive, depth, lines):
    indent = "\t" * depth
    if directive.raw:
        lines.append(indent + directive.name)
        return
    parts = [directive.name]
    if directive.matcher:
        parts.append(directive.matcher)
    parts.extend(_format_token(a) for a in directive.args)
    line = indent + " ".join(parts)
    if directive.block is None:
        lines.append(line)
        return
    lines.append(line + " {")
    for child in directive.block:
        _format_directive(child, depth + 1, lines)
    lines.append(indent + "}")


def format_caddyfile(doc):
    """Render a Caddyfile document to text (sites separated by a blank line)."""
    chunks = []
    for site in doc.sites:
        lines = [f"{site.address} {{"]
        for directive in site.directives:
            _format_directive(directive, 1, lines)
        lines.append("}")
        chunks.append("\n".join(lines) + "\n")
    return "\n".join(chunks)


# ── parsing ─────────────────────────────────────────────────────────


@dataclass
class Token:
    text: str
    line: int


def tokenize(text):
    """Split Caddyfile text into tokens, keeping the line each starts on.

    Quoted tokens come back as ``Quoted`` with escapes resolved. ``#`` at the
    start of a token comments out the rest of the line.
    """
    tokens = []
    i, line, n = 0, 1, len(text)
    while i < n:
        c = text[i]
        if c == "\n":
            line += 1
            i += 1
        elif c.isspace():
            i += 1
        elif c == "#":
            while i < n and text[i] != "\n":
                i += 1
        elif c == '"':
            start_line = line
            i += 1
            buf = []
            while True:
                if i >= n:
                    raise ValueError(f"unterminated quote starting on line {start_line}")
                c = text[i]
                if c == "\\" and i + 1 < n and text[i + 1] in '"\\':
                    buf.append(text[i + 1])
                    i += 2
                    continue
                if c == '"':
                    i += 1
                    break
                if c == "\n":
                    line += 1
                buf.append(c)
                i += 1
            tokens.append(Token(Quoted("".join(buf)), start_line))
        else:
            start = i
            while i < n and not text[i].isspace():
                i += 1
            tokens.append(Token(text[start:i], line))
    return tokens


def _group_lines(tokens):
    lines = []
    for tok in tokens:
        if lines and lines[-1][0].line == tok.line:
            lines[-1].append(tok)
        else:
            lines.append([tok])
    return lines


def _is_matcher(token):
    if isinstance(token, Quoted):
        return False
    return token.startswith("@") or token.startswith("/") or token == "*"


def _directive_from(words, line_no):
    name, rest = words[0], words[1:]
    if isinstance(name, Quoted):
        raise ValueError(f"line {line_no}: directive name cannot be quoted")
    matcher = None
    if rest and _is_matcher(rest[0]):
        matcher, rest = rest[0], rest[1:]
    return Directive(name=name, args=list(rest), matcher=matcher)


def parse_caddyfile(text):
    """Parse Caddyfile text into a ``Caddyfile`` document.

    Supports the subset the formatter emits: site blocks, directives with an
    optional matcher and arguments, and nested ``{ }`` blocks opened at the end
    of a line and closed on a line of their own.
    """
    doc = Caddyfile()
    stack = []  # open blocks: list of directive lists
    for words_tokens in _group_lines(tokenize(text)):
        line_no = words_tokens[0].line
        words = [t.text for t in words_tokens]
        is_brace = [not isinstance(w, Quoted) for w in words]

        if words == ["}"] and is_brace[0]:
            if not stack:
                raise ValueError(f"line {line_no}: unexpected '}}'")
            stack.pop()
            continue

        opens = words[-1] == "{" and is_brace[-1]
        if opens:
            words = words[:-1]
        if not words:
            raise ValueError(f"line {line_no}: block without a name")
        if any(w in ("{", "}") and b for w, b in zip(words, is_brace)):
            raise ValueError(f"line {line_no}: braces must end a line or stand alone")

        if not stack:
            if not opens:
                raise ValueError(f"line {line_no}: expected a site block, got {' '.join(words)!r}")
            site = SiteBlock(address=" ".join(words))
            doc.sites.append(site)
            stack.append(site.directives)
            continue

        directive = _directive_from(words, line_no)
        stack[-1].append(directive)
        if opens:
            directive.block = []
            stack.append(directive.block)

    if stack:
        raise ValueError("unclosed block at end of input")
    return doc


# ── rendering ───────────────────────────────────────────────────────


def site_block(proxy, domain):
    """Build the site block for ``domain`` from a ProxyConfig."""
    site = SiteBlock(address=domain)
    add = site.directives.append

    if proxy.auth is not None:
        user, password_hash = proxy.auth
        # ACME HTTP-01 must stay reachable or certificate issuance fails.
        add(Directive("@protected", ["not", "path", ACME_CHALLENGE_PATH]))
        add(Directive("basic_auth", matcher="@protected", block=[Directive(user, [password_hash])]))

    if proxy.routes:
        for path, upstream in proxy.routes:
            add(Directive("handle", matcher=path or None, block=[Directive("reverse_proxy", [str(upstream)])]))
    elif proxy.default_upstream is not None:
        add(Directive("reverse_proxy", [str(proxy.default_upstream)]))

    if proxy.compress:
        add(Directive("encode", ["gzip"]))

    if proxy.add_security_headers:
        headers = [Directive(name, [Quoted(value)]) for name, value in SECURITY_HEADERS]
        headers.append(Directive("-Server"))
        add(Directive("header", block=headers))

    for line in proxy.extra_directives:
        add(Directive.verbatim(line))

    return site


def generate_caddyfile(proxy, domain):
    """Render the complete Caddyfile for one domain."""
    return format_caddyfile(Caddyfile(sites=[site_block(proxy, domain)]))


def placeholder_caddyfile(domain):
    """Caddyfile served while the first deploy is still in flight."""
    site = SiteBlock(domain, [Directive("respond", [Quoted("Service is being deployed..."), "503"])])
    return format_caddyfile(Caddyfile(sites=[site]))
