"""
Markdown to HTML conversion for the blog front end.
Copyright (c) 2014 Brendan Abel
License: BSD3

"""

import io
import re
import sys
import logging
import argparse
from collections import namedtuple
from pprint import pformat

__version__ = '0.1.0'

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


# Block level patterns, always matched against a single line.
RE_EMPTY = re.compile(r'^([ \t]*)$')
RE_SETEXT = re.compile(r'^((=+)|(-+))$')
RE_HEADER = re.compile(r'^(#{1,6})(?!#)(.*?)#*$')
RE_BLOCKQUOTE = re.compile(r'^[ ]{0,3}>[ ]?(.*)$')
RE_INDENT = re.compile(r'^(?:    |\t)(.*)$')
RE_CODE = re.compile(r'^```([\w+#.-]*)\s*$')
RE_HR = re.compile(r'^[ ]{0,3}(?:(?:-[ ]{0,2}){3,}|(?:_[ ]{0,2}){3,}|(?:\*[ ]{0,2}){3,})$')
RE_HTML = re.compile(r'^<[ ]*\w+(?:[ />]|$)')
RE_UL = re.compile(r'^[ ]{0,3}[*+-][ \t]+(.*)$')
RE_OL = re.compile(r'^[ ]{0,3}\d+\.[ \t]+(.*)$')
RE_TABLE_ROW = re.compile(r'\|')
RE_TABLE_ALIGN = re.compile(r'^[ ]*\|?[ ]*:?-+:?[ ]*(?:\|[ ]*:?-+:?[ ]*)*\|?[ ]*$')
RE_TABLE_CELL = re.compile(r'[^|]+')

# Reference definitions: [id]: url "optional title"
LINK_TITLE = '"[^"]+"|\'[^\']+\'|\\([^)]+\\)'
RE_LINK_DEFINITION = re.compile(
    r'^[ ]{0,3}\[([^\]]+)\]:\s+(\S+)\s*(' + LINK_TITLE + r'|)\s*$')
RE_LINK_TITLE = re.compile(r'^\s*(' + LINK_TITLE + r')\s*$')

# Closing half of a link or image: ], ][id], ][] or ](url "title").
LINK_END = r'\](?:(\s?\[([^\]]*)\]|\s?\(([^ )]+)(?:[ ]*"([^"]+)"|)\))|)'

ESCAPABLE = r'[\\`*_{}\[\]()#+,.!-]'
RE_ESCAPED_CHAR = re.compile(r'\\(' + ESCAPABLE + ')')

# Lines starting with one of these always make a list item a block item.
BLOCKS_IN_LIST = (RE_BLOCKQUOTE, RE_HEADER, RE_HR, RE_INDENT, RE_UL, RE_OL)

# Class added to fenced code blocks that name a language.
CODE_CLASS_MARKER = 'prettyprint'

# Tags preceded by a newline when rendered after other output.
BLOCK_TAGS = frozenset([
    'blockquote', 'h1', 'h2', 'h3', 'h4', 'h5', 'h6', 'hr', 'p', 'pre',
])

# Attributes rendered first, in this order. The rest follow sorted by name.
ATTRIBUTE_ORDER = ('src', 'alt')


class MarkdownError(Exception):
    """
    Base class for errors raised by the converter.
    """
    pass


class ParseError(MarkdownError):
    """
    Raised when the parser reaches a state it should never be in.
    """
    pass


class RuleError(MarkdownError):
    """
    Raised when a caller supplied inline syntax cannot be used.
    """
    pass


class Dumper(object):

    def dump(self):
        d = {}
        for k, v in self.__dict__.items():
            if isinstance(v, (list, tuple)):
                d[k] = [lv.dump() if hasattr(lv, 'dump') else lv for lv in v]
            else:
                d[k] = v.dump() if hasattr(v, 'dump') else v
        return (self.__class__.__name__, d)


Link = namedtuple('Link', ['id', 'url', 'title'])


# UTILITY FUNCTIONS
def escape(s, quote=False):
    """ Escape the characters HTML treats specially.
    """
    s = s.replace('&', '&amp;').replace('<', '&lt;').replace('>', '&gt;')
    if quote:
        s = s.replace('"', '&quot;')
    return s


def unescape(s):
    """ Replace backslash escapes with literal characters and expand tabs.
    """
    return RE_ESCAPED_CHAR.sub(r'\1', s).replace('\t', '    ')


def split_lines(text):
    """ Normalize line endings to \\n and split text into lines.
    """
    return re.sub(r'\r\n|\r', '\n', text).split('\n')


def compile_pattern(pattern):
    try:
        return re.compile(pattern)
    except re.error as e:
        raise RuleError('Invalid inline pattern {0!r}: {1}'.format(pattern, e))


# NODES

class Node(Dumper):
    """
    A node of the output tree.
    """
    pass


class Element(Node):
    """
    An HTML element. An element whose children are None is rendered as a
    void element, e.g. <hr />.
    """

    def __init__(self, tag, children=None, attributes=None):
        super(Element, self).__init__()
        self.tag = tag
        self.children = None if children is None else tuple(children)
        self.attributes = dict(attributes or {})

    @property
    def is_empty(self):
        return self.children is None

    def __repr__(self):
        return 'Element({0!r}, {1!r}, {2!r})'.format(self.tag, self.children, self.attributes)


class Text(Node):
    """
    Literal output. Content is escaped by the parser, never by the renderer.
    """

    def __init__(self, content):
        super(Text, self).__init__()
        self.content = content

    def __repr__(self):
        return 'Text({0!r})'.format(self.content)


# INLINE PARSER

class InlineSyntax(object):
    """
    A rule recognized within the text of a block.

    The pattern must match at the parser position.  Subclasses override
    on_match, which returns True when the matched text has been consumed
    by the syntax, or False when the parser should keep it as pending text.

    """

    def __init__(self, pattern):
        self.pattern = compile_pattern(pattern)

    def try_match(self, parser):
        match = self.pattern.match(parser.source, parser.pos)
        if match is None or match.end() == match.start():
            return False
        parser.write_text()
        if self.on_match(parser, match):
            parser.consume(len(match.group(0)))
        return True

    def on_match(self, parser, match):
        return False


class AutolinkSyntaxWithoutBrackets(InlineSyntax):
    """ A bare http, https or ftp URL.
    """

    def __init__(self):
        super(AutolinkSyntaxWithoutBrackets, self).__init__(r'\b((http|https|ftp)://[^\s]*)\b')

    def on_match(self, parser, match):
        url = match.group(1)
        parser.add_node(Element('a', [Text(escape(url))], {'href': escape(url, True)}))
        return True


class AutolinkSyntax(InlineSyntax):
    """ A URL wrapped in angle brackets, e.g. <http://example.com>.
    """

    def __init__(self):
        super(AutolinkSyntax, self).__init__(r'<((http|https|ftp)://[^>]*)>')

    def on_match(self, parser, match):
        url = match.group(1)
        parser.add_node(Element('a', [Text(escape(url))], {'href': escape(url, True)}))
        return True


class TextSyntax(InlineSyntax):
    """
    Literal text.  With a substitute, the match is replaced by it; without
    one the match is kept as pending text so no later rule can claim it.

    """

    def __init__(self, pattern, substitute=None):
        super(TextSyntax, self).__init__(pattern)
        self.substitute = substitute

    def on_match(self, parser, match):
        if self.substitute is None:
            parser.advance_by(len(match.group(0)))
            return False
        parser.add_node(Text(self.substitute))
        return True


class CodeSyntax(InlineSyntax):

    def on_match(self, parser, match):
        parser.add_node(Element('code', [Text(escape(match.group(1)))]))
        return True


class TagSyntax(InlineSyntax):
    """
    A delimiter that opens a tag.  Matching pushes a TagState; the tag is
    created when end_pattern matches later in the same text.

    """

    def __init__(self, pattern, tag=None, end=None):
        super(TagSyntax, self).__init__(pattern)
        self.tag = tag
        self.end_pattern = compile_pattern(end if end is not None else pattern)

    def on_match(self, parser, match):
        parser.stack.append(TagState(parser.pos, parser.pos + len(match.group(0)), self))
        return True

    def on_match_end(self, parser, state, match):
        parser.add_node(Element(self.tag, state.children))
        return True

    def rejected_length(self, match):
        return len(match.group(0))


class LinkSyntax(TagSyntax):
    """
    [text](url "title"), [text][id], [text][] and [text].

    The bare [text] form is first offered to the link resolver, if any,
    then looked up in the document's reference links.

    """

    def __init__(self, link_resolver=None, pattern=r'\['):
        super(LinkSyntax, self).__init__(pattern, end=LINK_END)
        self.link_resolver = link_resolver

    def on_match_end(self, parser, state, match):
        if not match.group(1) and self.link_resolver is not None:
            node = self.resolve_shortcut(state)
            if node is not None:
                parser.add_node(node)
                return True

        target = self.find_target(parser, state, match)
        if target is None:
            return False
        url, title = target
        parser.add_node(self.create_node(state, url, title))
        return True

    def rejected_length(self, match):
        # Only the bracket; whatever followed it is parsed again.
        return 1

    def resolve_shortcut(self, state):
        if len(state.children) != 1 or not isinstance(state.children[0], Text):
            return None
        return self.link_resolver(state.children[0].content)

    def find_target(self, parser, state, match):
        """
        Return (url, title) for the link being closed, or None if it
        points to an unknown reference.

        """
        if match.group(3):
            url = match.group(3)
            if url.startswith('<') and url.endswith('>'):
                url = url[1:-1]
            return url, match.group(4)

        ref_id = match.group(2) or parser.source[state.end:parser.pos]
        link = parser.document.ref_links.get(ref_id.lower())
        if link is None:
            return None
        return link.url, link.title

    def create_node(self, state, url, title):
        attributes = {'href': escape(url, True)}
        if title:
            attributes['title'] = escape(title, True)
        return Element('a', state.children, attributes)


class ImageSyntax(LinkSyntax):

    def __init__(self, link_resolver=None):
        super(ImageSyntax, self).__init__(link_resolver, pattern=r'!\[')

    def create_node(self, state, url, title):
        attributes = {'src': escape(url, True)}
        if len(state.children) == 1 and isinstance(state.children[0], Text):
            attributes['alt'] = state.children[0].content.replace('"', '&quot;')
        if title:
            attributes['title'] = escape(title, True)
        return Element('img', None, attributes)


class TagState(Dumper):
    """
    An inline tag that has been opened but not yet closed.
    """

    def __init__(self, start, end, syntax):
        super(TagState, self).__init__()
        self.start = start
        self.end = end
        self.syntax = syntax
        self.children = []


# Precedence is significant: the first syntax matching at the cursor wins.
# Caller supplied syntaxes go right after the bare autolink, and the link
# and image syntaxes are built per Markdown instance around the resolver.
HEAD_INLINE_SYNTAXES = (
    AutolinkSyntaxWithoutBrackets(),
)

DEFAULT_INLINE_SYNTAXES = (
    TextSyntax(r' {2,}\n', '<br />\n'),
    TextSyntax(r'\\' + ESCAPABLE),
    TextSyntax(r'\s*(?!(?:https?|ftp)://)[A-Za-z0-9]+'),
    AutolinkSyntax(),
)

TAIL_INLINE_SYNTAXES = (
    TextSyntax(r' \* '),
    TextSyntax(r' _ '),
    # A run of blanks in one match. Leaves the last space of ' * ' or ' _ '
    # and the spaces of a hard break after a tab.
    TextSyntax(r'[ \t]*\t(?= {2,}\n)|[ \t]+(?= [*_] )|[ \t]+(?=[^ \t]|\Z)'),
    TextSyntax(r'&[#a-zA-Z0-9]*;'),
    TextSyntax(r'&', '&amp;'),
    TextSyntax(r'</?\w+.*?>'),
    TextSyntax(r'<', '&lt;'),
    TextSyntax(r'>', '&gt;'),
    TagSyntax(r'\*\*', 'strong'),
    TagSyntax(r'__', 'strong'),
    TagSyntax(r'\*', 'em'),
    TagSyntax(r'\b_', 'em', r'_\b'),
    CodeSyntax(r'``\s?((?:.|\n)*?)\s?``'),
    CodeSyntax(r'`([^`]*)`'),
)


def build_inline_syntaxes(inline_syntaxes=None, link_resolver=None):
    """ Assemble the ordered inline syntax list for one configuration.
    """
    return (list(HEAD_INLINE_SYNTAXES) +
            list(inline_syntaxes or []) +
            list(DEFAULT_INLINE_SYNTAXES) +
            [LinkSyntax(link_resolver), ImageSyntax(link_resolver)] +
            list(TAIL_INLINE_SYNTAXES))


class InlineParser(Dumper):
    """
    Parses the text of one block into a list of nodes.

    Pending text runs from start to pos and is written out whenever a
    syntax matches.  Open tags are kept on a stack whose first entry is
    the root, which is only closed when the text is exhausted.

    """

    def __init__(self, source, document):
        super(InlineParser, self).__init__()
        self.source = source
        self.document = document
        self.syntaxes = document.inline_syntaxes
        self.start = 0
        self.pos = 0
        self.stack = []

    def parse(self):
        self.stack.append(TagState(0, 0, None))
        while self.pos < len(self.source):
            if self.match_open_tag():
                continue
            for syntax in self.syntaxes:
                if syntax.try_match(self):
                    break
            else:
                self.advance_by(1)
        return self.close(0, None)

    def match_open_tag(self):
        """
        Try to close each open tag, innermost first.  The root is skipped.
        """
        for index in range(len(self.stack) - 1, 0, -1):
            state = self.stack[index]
            match = state.syntax.end_pattern.match(self.source, self.pos)
            if match is not None and match.end() > match.start():
                self.close(index, match)
                return True
        return False

    def close(self, index, match):
        """
        Close the tag at index.  Tags opened after it are unmatched; their
        delimiters become literal text and their children move into it.

        Returns the root's children when the root is closed, else None.

        """
        if index >= len(self.stack):
            raise ParseError('Cannot close tag {0}, only {1} open.'.format(index, len(self.stack)))

        state = self.stack[index]
        unmatched = self.stack[index + 1:]
        del self.stack[index + 1:]
        for inner in unmatched:
            self.write_text_range(inner.start, inner.end)
            state.children.extend(inner.children)
        self.write_text()
        self.stack.pop()

        if not self.stack:
            return state.children

        if state.syntax.on_match_end(self, state, match):
            self.consume(len(match.group(0)))
        else:
            self.write_text_range(state.start, state.end)
            self.stack[-1].children.extend(state.children)
            self.start = self.pos
            self.advance_by(state.syntax.rejected_length(match))
        return None

    def write_text(self):
        self.write_text_range(self.start, self.pos)
        self.start = self.pos

    def write_text_range(self, start, end):
        if end <= start:
            return
        text = unescape(self.source[start:end])
        nodes = self.stack[-1].children
        if nodes and isinstance(nodes[-1], Text):
            nodes[-1] = Text(nodes[-1].content + text)
        else:
            nodes.append(Text(text))

    def add_node(self, node):
        self.stack[-1].children.append(node)

    def advance_by(self, length):
        self.pos += length

    def consume(self, length):
        self.pos += length
        self.start = self.pos


# BLOCK PARSER

class BlockParser(object):
    """
    A cursor over lines[start:end].  Nested blocks get their own parser
    over a range of the same list.
    """

    def __init__(self, lines, document, start=0, end=None):
        self.lines = lines
        self.document = document
        self.pos = start
        self.end = len(lines) if end is None else end

    @property
    def current(self):
        return self.lines[self.pos]

    @property
    def next(self):
        if self.pos >= self.end - 1:
            return None
        return self.lines[self.pos + 1]

    @property
    def is_done(self):
        return self.pos >= self.end

    def advance(self):
        self.pos += 1

    def replace(self, line, offset=0):
        """ Overwrite the current line, or the line offset after it.
        """
        self.lines[self.pos + offset] = line

    def matches(self, regex):
        if self.is_done:
            return None
        return regex.match(self.current)

    def matches_next(self, regex):
        line = self.next
        if line is None:
            return None
        return regex.match(line)


class BlockSyntax(object):
    """
    A block construct.  can_end_block tells whether recognizing the start
    of this construct ends a paragraph or list item being accumulated.
    """

    pattern = None
    can_end_block = True

    def can_parse(self, parser):
        return parser.matches(self.pattern) is not None

    def parse(self, parser):
        raise NotImplementedError

    def parse_child_lines(self, parser):
        """
        Strip the prefix from each consecutive matching line in place and
        return the (start, end) range they occupy.  A blank line is kept
        when the line after it matches again.
        """
        start = parser.pos
        while not parser.is_done:
            match = parser.matches(self.pattern)
            if match is not None:
                parser.replace(match.group(1))
                parser.advance()
                continue

            next_match = parser.matches_next(self.pattern)
            if parser.current.strip() == '' and next_match is not None:
                parser.replace('')
                parser.replace(next_match.group(1), 1)
                parser.advance()
                parser.advance()
            else:
                break
        return start, parser.pos


class EmptyBlockSyntax(BlockSyntax):

    pattern = RE_EMPTY

    def parse(self, parser):
        parser.advance()
        return None


class BlockHtmlSyntax(BlockSyntax):
    """ Raw HTML, passed through untouched up to the next blank line.
    """

    pattern = RE_HTML
    can_end_block = False

    def parse(self, parser):
        child_lines = []
        while not parser.is_done and not parser.matches(RE_EMPTY):
            child_lines.append(parser.current)
            parser.advance()
        return Text('\n'.join(child_lines))


class SetextHeaderSyntax(BlockSyntax):

    def can_parse(self, parser):
        return parser.matches_next(RE_SETEXT) is not None

    def parse(self, parser):
        match = parser.matches_next(RE_SETEXT)
        tag = 'h1' if match.group(1)[0] == '=' else 'h2'
        contents = parser.document.parse_inline(parser.current)
        parser.advance()
        parser.advance()
        return Element(tag, contents)


class HeaderSyntax(BlockSyntax):

    pattern = RE_HEADER

    def parse(self, parser):
        match = parser.matches(self.pattern)
        parser.advance()
        level = len(match.group(1))
        contents = parser.document.parse_inline(match.group(2).strip())
        return Element('h{0}'.format(level), contents)


class CodeBlockSyntax(BlockSyntax):

    pattern = RE_INDENT

    def parse(self, parser):
        start, end = self.parse_child_lines(parser)
        escaped = escape('\n'.join(parser.lines[start:end]) + '\n')
        return Element('pre', [Element('code', [Text(escaped)])])


class FencedCodeBlockSyntax(BlockSyntax):
    """
    Runs up to a closing fence or the end of input.  The closing fence may
    repeat the language.
    """

    pattern = RE_CODE

    def parse_child_lines(self, parser):
        parser.advance()
        start = parser.pos
        while not parser.is_done and not parser.matches(self.pattern):
            parser.advance()
        end = parser.pos
        if not parser.is_done:
            parser.advance()
        return start, end

    def parse(self, parser):
        language = parser.matches(self.pattern).group(1)
        start, end = self.parse_child_lines(parser)
        attributes = {}
        if language:
            attributes['class'] = '{0} {1}'.format(CODE_CLASS_MARKER, escape(language, True))
        code = Element('code', [Text(escape('\n'.join(parser.lines[start:end])))], attributes)
        return Element('pre', [code])


class BlockquoteSyntax(BlockSyntax):

    pattern = RE_BLOCKQUOTE

    def parse(self, parser):
        start, end = self.parse_child_lines(parser)
        children = parser.document.parse_lines(parser.lines, start, end)
        return Element('blockquote', children)


class HorizontalRuleSyntax(BlockSyntax):

    pattern = RE_HR

    def parse(self, parser):
        parser.advance()
        return Element('hr')


class ListItem(Dumper):
    """
    The lines from start to end, with bullets and indentation stripped.
    """

    def __init__(self, start):
        super(ListItem, self).__init__()
        self.start = start
        self.end = start + 1
        self.force_block = False


class ListSyntax(BlockSyntax):
    """
    Lines are split into items at each bullet.  Indented lines continue
    the current item, dedented.  Other lines continue it lazily unless
    they start a block or follow a blank line.

    """

    list_tag = None

    def parse(self, parser):
        lines = parser.lines
        items = []
        while not parser.is_done:
            line = parser.current
            match = RE_UL.match(line) or RE_OL.match(line)
            if RE_EMPTY.match(line):
                parser.replace('')
            elif match:
                items.append(ListItem(parser.pos))
                parser.replace(match.group(1))
            else:
                match = RE_INDENT.match(line)
                if match:
                    parser.replace(match.group(1))
                elif is_at_block_end(parser):
                    break
                elif lines[parser.pos - 1] == '':
                    break
            parser.advance()
            items[-1].end = parser.pos

        # A blank line between two items makes both of them loose.
        for i, item in enumerate(items):
            while item.end > item.start and lines[item.end - 1] == '':
                if i < len(items) - 1:
                    item.force_block = True
                    items[i + 1].force_block = True
                item.end -= 1

        item_nodes = [self.parse_item(parser, item) for item in items]
        return Element(self.list_tag, item_nodes)

    def parse_item(self, parser, item):
        if item.end == item.start:
            return Element('li', [])

        first = parser.lines[item.start]
        block_item = (item.force_block or item.end - item.start > 1 or
                      any(p.match(first) for p in BLOCKS_IN_LIST))
        if not block_item:
            return Element('li', parser.document.parse_inline(first))

        children = parser.document.parse_lines(parser.lines, item.start, item.end)
        if not item.force_block and len(children) == 1:
            node = children[0]
            if isinstance(node, Element) and node.tag == 'p':
                children = node.children
        return Element('li', children)


class UnorderedListSyntax(ListSyntax):

    pattern = RE_UL
    list_tag = 'ul'


class OrderedListSyntax(ListSyntax):

    pattern = RE_OL
    list_tag = 'ol'


class TableSyntax(BlockSyntax):
    """
    A header row, an alignment row and any number of body rows.
    """

    pattern = RE_TABLE_ROW
    can_end_block = False

    def can_parse(self, parser):
        return (RE_TABLE_ROW.search(parser.current) is not None and
                parser.matches_next(RE_TABLE_ALIGN) is not None)

    @staticmethod
    def split_cells(line):
        return [cell.strip() for cell in RE_TABLE_CELL.findall(line.strip())]

    @staticmethod
    def parse_alignment(text):
        if text.startswith(':'):
            return 'center' if text.endswith(':') else 'left'
        if text.endswith(':'):
            return 'right'
        return 'left'

    def parse_row(self, parser, line, tag, aligns):
        cells = []
        for index, text in enumerate(self.split_cells(line)):
            attributes = {}
            if index < len(aligns) and aligns[index] != 'left':
                attributes['align'] = aligns[index]
            cells.append(Element(tag, parser.document.parse_inline(text), attributes))
        return Element('tr', cells)

    def parse(self, parser):
        head_line = parser.current
        parser.advance()
        aligns = [self.parse_alignment(text) for text in self.split_cells(parser.current)]
        parser.advance()

        rows = []
        while (not parser.is_done and not parser.matches(RE_EMPTY) and
               RE_TABLE_ROW.search(parser.current)):
            rows.append(self.parse_row(parser, parser.current, 'td', aligns))
            parser.advance()

        head = self.parse_row(parser, head_line, 'th', aligns)
        return Element('table', [Element('thead', [head]), Element('tbody', rows)])


class ParagraphSyntax(BlockSyntax):

    can_end_block = False

    def can_parse(self, parser):
        return True

    def parse(self, parser):
        child_lines = [parser.current.lstrip()]
        parser.advance()
        while not is_at_block_end(parser):
            child_lines.append(parser.current.lstrip())
            parser.advance()
        contents = parser.document.parse_inline('\n'.join(child_lines))
        return Element('p', contents)


# The first syntax whose can_parse accepts the current line parses it, so
# this order decides every ambiguity between constructs.  ParagraphSyntax
# accepts anything and must stay last.
BLOCK_SYNTAXES = (
    EmptyBlockSyntax(),
    BlockHtmlSyntax(),
    SetextHeaderSyntax(),
    HeaderSyntax(),
    CodeBlockSyntax(),
    FencedCodeBlockSyntax(),
    BlockquoteSyntax(),
    HorizontalRuleSyntax(),
    UnorderedListSyntax(),
    OrderedListSyntax(),
    TableSyntax(),
    ParagraphSyntax(),
)


def is_at_block_end(parser):
    """
    Returns true if the current line ends the paragraph or list being
    accumulated: the input is exhausted or a block-ending syntax starts here.
    """
    if parser.is_done:
        return True
    return any(syntax.can_end_block and syntax.can_parse(parser)
               for syntax in BLOCK_SYNTAXES)


class Document(Dumper):
    """
    State shared by the block and inline parsers for one conversion.
    """

    def __init__(self, inline_syntaxes=None):
        super(Document, self).__init__()
        self.ref_links = {}
        if inline_syntaxes is None:
            inline_syntaxes = build_inline_syntaxes()
        self.inline_syntaxes = inline_syntaxes

    def parse(self, markdown):
        """ Parse a whole document and return its top level nodes.
        """
        lines = split_lines(markdown)
        self.parse_ref_links(lines)
        return self.parse_lines(lines)

    def parse_ref_links(self, lines):
        """
        Collect reference link definitions into ref_links, blanking the
        lines they were defined on.  A later definition of the same id
        replaces an earlier one.

        """
        for i, line in enumerate(lines):
            match = RE_LINK_DEFINITION.match(line)
            if not match:
                continue
            ref_id, url, title = match.groups()
            if url.startswith('<') and url.endswith('>'):
                url = url[1:-1]
            if not title and i + 1 < len(lines):
                title_match = RE_LINK_TITLE.match(lines[i + 1])
                if title_match:
                    title = title_match.group(1)
                    lines[i + 1] = ''
            title = title[1:-1] if title else None
            ref_id = ref_id.lower()
            logger.debug('Found reference link [{0}]: {1}'.format(ref_id, url))
            self.ref_links[ref_id] = Link(ref_id, url, title)
            lines[i] = ''
        return self.ref_links

    def parse_lines(self, lines, start=0, end=None):
        """
        Parse lines[start:end] into block nodes.  Nested blocks strip their
        prefixes in place, so lines is modified.
        """
        parser = BlockParser(lines, self, start, end)
        blocks = []
        while not parser.is_done:
            for syntax in BLOCK_SYNTAXES:
                if syntax.can_parse(parser):
                    block = syntax.parse(parser)
                    if block is not None:
                        blocks.append(block)
                    break
        return blocks

    def parse_inline(self, text):
        return InlineParser(text, self).parse()


class HtmlRenderer(Dumper):

    def __init__(self):
        super(HtmlRenderer, self).__init__()
        self.buffer = []

    @staticmethod
    def attribute_key(name):
        if name in ATTRIBUTE_ORDER:
            return (ATTRIBUTE_ORDER.index(name), '')
        return (len(ATTRIBUTE_ORDER), name)

    def render(self, nodes):
        """ Render a list of nodes as an HTML fragment.
        """
        self.buffer = []
        for node in nodes:
            self.render_node(node)
        return ''.join(self.buffer)

    def write(self, s):
        if s:
            self.buffer.append(s)

    def render_node(self, node):
        if isinstance(node, Text):
            self.write(node.content)
        elif isinstance(node, Element):
            self.render_element(node)
        else:
            logger.warning('Unknown node type: {0}'.format(type(node).__name__))

    def render_element(self, element):
        if self.buffer and element.tag in BLOCK_TAGS:
            self.write('\n')
        self.write('<' + element.tag)
        for name in sorted(element.attributes, key=self.attribute_key):
            self.write(' {0}="{1}"'.format(name, element.attributes[name]))

        if element.is_empty:
            self.write(' />')
            return

        self.write('>')
        for child in element.children:
            self.render_node(child)
        self.write('</{0}>'.format(element.tag))


class Markdown(object):
    """
    A configured converter.

    inline_syntaxes are InlineSyntax instances tried before the built in
    link syntax.  link_resolver is called with the text of a [text] link or
    image that names no target, and returns a Node or None.

    """

    def __init__(self, inline_syntaxes=None, link_resolver=None):
        inline_syntaxes = list(inline_syntaxes or [])
        for syntax in inline_syntaxes:
            if not isinstance(syntax, InlineSyntax):
                raise RuleError('Expected an InlineSyntax, got {0!r}'.format(syntax))
        if link_resolver is not None and not callable(link_resolver):
            raise RuleError('link_resolver must be callable, got {0!r}'.format(link_resolver))
        self.inline_syntaxes = build_inline_syntaxes(inline_syntaxes, link_resolver)

    def parse(self, markdown):
        return Document(self.inline_syntaxes).parse(markdown)

    def convert(self, markdown):
        """
        Convert markdown to an HTML fragment.  Never raises: a failure is
        logged and reported as an escaped <pre> block instead.
        """
        try:
            html = HtmlRenderer().render(self.parse(markdown))
        except Exception as e:
            logger.exception('Markdown conversion failed')
            return '<pre>{0}</pre>'.format(escape('{0}: {1}'.format(type(e).__name__, e)))
        logger.debug('Converted {0} characters of markdown'.format(len(markdown)))
        return html


def markdown_to_html(markdown, inline_syntaxes=None, link_resolver=None):
    """ Convert markdown text to an HTML fragment.
    """
    return Markdown(inline_syntaxes, link_resolver).convert(markdown)


def main(argv=None):

    parser = argparse.ArgumentParser(description='Convert markdown to an HTML fragment.')
    parser.add_argument('input', nargs='?', help='markdown file, read from stdin if omitted')
    parser.add_argument('-o', '--output', help='write the result to this file')
    parser.add_argument('-d', '--dump', action='store_true', help='print the parsed node tree')
    parser.add_argument('-v', '--verbose', action='store_true')
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    if args.input:
        with io.open(args.input, encoding='utf-8') as f:
            text = f.read()
    else:
        text = sys.stdin.read()

    if args.dump:
        result = pformat([node.dump() for node in Markdown().parse(text)])
    else:
        result = markdown_to_html(text)

    if args.output:
        with io.open(args.output, 'w', encoding='utf-8') as f:
            f.write(result + '\n')
    else:
        print(result)
    return 0


if __name__ == '__main__':
    sys.exit(main())
