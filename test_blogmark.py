import io
import os
import re
import time

import pytest

import blogmark
from blogmark import Document, Element, HtmlRenderer, InlineSyntax, Markdown, Text


EXAMPLES_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'examples.txt')


def load_examples():
    """
    Read the markdown/html pairs from examples.txt.  Each pair is delimited
    by lines holding a single '.', and '#' lines name the section.
    """
    with io.open(EXAMPLES_PATH, encoding='utf-8') as f:
        text = f.read()

    regex = re.compile(r'^\.\n(?P<markdown>[\s\S]*?)^\.\n(?P<html>[\s\S]*?)^\.$|^#{1,6} *(?P<section>.*)$', flags=re.M)

    examples = []
    current_section = None
    for match in regex.finditer(text):
        if match.group('section'):
            current_section = match.group('section')
        else:
            number = len(examples) + 1
            examples.append(pytest.param(
                match.group('markdown'),
                match.group('html')[:-1],
                id='{0} {1}'.format(current_section, number),
            ))
    return examples


@pytest.mark.parametrize('markdown,html', load_examples())
def test_examples(markdown, html):
    assert blogmark.markdown_to_html(markdown) == html


def render_inline(text):
    return HtmlRenderer().render(Document().parse_inline(text))


@pytest.mark.parametrize('text', [
    'Just some words here',
    'numbers 123 and more',
    'tom & jerry',
    '1 < 2',
    '2 > 1',
])
def test_plain_text_is_an_escaped_paragraph(text):
    assert blogmark.markdown_to_html(text) == '<p>{0}</p>'.format(blogmark.escape(text))


@pytest.mark.parametrize('level', range(1, 7))
def test_header_level_is_number_of_hashes(level):
    markdown = '#' * level + ' Title'
    assert blogmark.markdown_to_html(markdown) == '<h{0}>Title</h{0}>'.format(level)


def test_hard_line_break():
    html = blogmark.markdown_to_html('line one  \nline two')
    assert html == '<p>line one<br />\nline two</p>'


def test_tabs_expand_to_four_spaces():
    assert blogmark.markdown_to_html('a\tb') == '<p>a    b</p>'


def test_line_endings_are_normalized():
    assert blogmark.markdown_to_html('a\r\nb\rc') == '<p>a\nb\nc</p>'


def test_hard_break_after_tab():
    html = blogmark.markdown_to_html('a\t  \n*b*')
    assert html == '<p>a    <br />\n<em>b</em></p>'


def test_spaces_before_literal_star():
    assert blogmark.markdown_to_html('a   * b *c*') == '<p>a   * b <em>c</em></p>'


def test_long_run_of_blanks_is_fast():
    markdown = 'a' + ' ' * 20000 + '!'
    started = time.time()
    html = blogmark.markdown_to_html(markdown)
    assert time.time() - started < 1.0
    assert html == '<p>{0}</p>'.format(markdown)


def test_code_indented_by_tab():
    assert blogmark.markdown_to_html('\tcode') == '<pre><code>code\n</code></pre>'


def test_parse_lines_over_a_range():
    lines = ['# skipped', '> quoted', '> more', 'after']
    nodes = Document().parse_lines(lines, 1, 3)
    assert HtmlRenderer().render(nodes) == '<blockquote>\n<p>quoted\nmore</p></blockquote>'
    assert lines == ['# skipped', 'quoted', 'more', 'after']


def test_nested_blocks_strip_prefixes_in_place():
    lines = ['- a', '    > b', '- c']
    nodes = Document().parse_lines(lines)
    assert HtmlRenderer().render(nodes) == (
        '<ul><li>\n<p>a</p>\n<blockquote>\n<p>b</p></blockquote></li><li>c</li></ul>')
    assert lines == ['a', 'b', 'c']


def test_empty_list_item():
    assert blogmark.markdown_to_html('- ') == '<ul><li></li></ul>'


def test_nested_list_item():
    html = blogmark.markdown_to_html('- a\n    - b')
    assert html == '<ul><li>\n<p>a</p><ul><li>b</li></ul></li></ul>'


def test_fenced_code_gets_marker_class():
    html = blogmark.markdown_to_html('```js\nvar a = "<b>";\n```')
    assert html == '<pre><code class="{0} js">var a = "&lt;b&gt;";</code></pre>'.format(
        blogmark.CODE_CLASS_MARKER)


def test_table_with_outer_pipes():
    html = blogmark.markdown_to_html('| A | B |\n| --- | --- |\n| 1 | 2 |')
    assert html == ('<table><thead><tr><th>A</th><th>B</th></tr></thead>'
                    '<tbody><tr><td>1</td><td>2</td></tr></tbody></table>')


def test_table_header_longer_than_alignment_row():
    html = blogmark.markdown_to_html('A|B|C\n:-:|--')
    assert html == ('<table><thead><tr><th align="center">A</th><th>B</th><th>C</th></tr></thead>'
                    '<tbody></tbody></table>')


# Reference links

def test_parse_ref_links():
    document = Document()
    lines = [
        "[Foo]: <http://foo.com> 'Foo title'",
        'text',
        '  [bar]: /bar',
        '(Bar title)',
    ]
    refs = document.parse_ref_links(lines)
    assert refs == {
        'foo': blogmark.Link('foo', 'http://foo.com', 'Foo title'),
        'bar': blogmark.Link('bar', '/bar', 'Bar title'),
    }
    assert lines == ['', 'text', '', '']


def test_non_definitions_are_left_alone():
    document = Document()
    lines = ['    [x]: http://x', '[y] : http://y']
    assert document.parse_ref_links(lines) == {}
    assert lines == ['    [x]: http://x', '[y] : http://y']


def test_last_definition_wins():
    document = Document()
    document.parse_ref_links(['[a]: /one', '[A]: /two'])
    assert document.ref_links['a'].url == '/two'


# Inline parser

def test_unmatched_delimiters_become_text():
    nodes = Document().parse_inline('**a *b')
    assert all(isinstance(node, Text) for node in nodes)
    assert HtmlRenderer().render(nodes) == '**a *b'


def test_closing_outer_tag_flattens_inner_ones():
    assert render_inline('[a *b](/u)') == '<a href="/u">a *b</a>'


def test_unresolved_link_keeps_its_children():
    assert render_inline('[*x*] y') == '[<em>x</em>] y'


def test_underscore_inside_word_is_literal():
    assert render_inline('a_b_c and _d_') == 'a_b_c and <em>d</em>'


def test_code_span_keeps_backslashes():
    assert render_inline('``a \\* b``') == '<code>a \\* b</code>'


def test_close_of_unknown_state_raises():
    parser = blogmark.InlineParser('text', Document())
    parser.stack.append(blogmark.TagState(0, 0, None))
    with pytest.raises(blogmark.ParseError):
        parser.close(3, None)


# Extension points

class MentionSyntax(InlineSyntax):

    def __init__(self):
        super(MentionSyntax, self).__init__(r'@(\w+)')

    def on_match(self, parser, match):
        parser.add_node(Element('a', [Text(match.group(0))], {'href': '/users/' + match.group(1)}))
        return True


class WikiLinkSyntax(InlineSyntax):

    def __init__(self):
        super(WikiLinkSyntax, self).__init__(r'\[\[(\w+)\]\]')

    def on_match(self, parser, match):
        parser.add_node(Element('a', [Text(match.group(1))], {'href': '/wiki/' + match.group(1)}))
        return True


def test_custom_inline_syntax():
    html = blogmark.markdown_to_html('ping @bob now', inline_syntaxes=[MentionSyntax()])
    assert html == '<p>ping <a href="/users/bob">@bob</a> now</p>'


def test_custom_inline_syntax_runs_before_links():
    html = blogmark.markdown_to_html('[[Page]]', inline_syntaxes=[WikiLinkSyntax()])
    assert html == '<p><a href="/wiki/Page">Page</a></p>'


def wiki_resolver(text):
    if text == 'Home':
        return Element('a', [Text(text)], {'href': '/wiki/' + text})
    return None


def test_link_resolver_falls_back_to_references():
    markdown = '[Home] and [Other]\n\n[other]: /o'
    html = blogmark.markdown_to_html(markdown, link_resolver=wiki_resolver)
    assert html == '<p><a href="/wiki/Home">Home</a> and <a href="/o">Other</a></p>'


def test_link_resolver_for_images():
    def resolver(text):
        return Element('img', None, {'src': '/logo.png', 'alt': text})

    html = blogmark.markdown_to_html('![Logo]', link_resolver=resolver)
    assert html == '<p><img src="/logo.png" alt="Logo" /></p>'


def test_link_resolver_ignores_explicit_targets():
    calls = []

    def resolver(text):
        calls.append(text)
        return None

    html = blogmark.markdown_to_html('[Home](/x)', link_resolver=resolver)
    assert html == '<p><a href="/x">Home</a></p>'
    assert calls == []


def test_link_resolver_may_convert_recursively():
    def resolver(text):
        return Text(blogmark.markdown_to_html('*' + text + '*'))

    html = blogmark.markdown_to_html('[hi]', link_resolver=resolver)
    assert html == '<p><p><em>hi</em></p></p>'


def test_bad_pattern_fails_at_setup():
    with pytest.raises(blogmark.RuleError):
        InlineSyntax('(')


def test_bad_inline_syntax_fails_at_setup():
    with pytest.raises(blogmark.RuleError):
        Markdown(inline_syntaxes=['not a syntax'])


def test_bad_link_resolver_fails_at_setup():
    with pytest.raises(blogmark.RuleError):
        Markdown(link_resolver='not callable')


# Error handling

def test_internal_error_is_reported_as_text(monkeypatch):
    def broken(self, lines):
        raise blogmark.ParseError('boom <here>')

    monkeypatch.setattr(Document, 'parse_lines', broken)
    assert Markdown().convert('# Title') == '<pre>ParseError: boom &lt;here&gt;</pre>'


@pytest.mark.parametrize('markdown', [
    None,
    '[[[**__``',
    '![',
    '|\n--',
    '> ' * 50 + 'x',
    '- \n-',
    '```',
    '<',
    '*' * 100,
    '[a](<b>) [c][d] ![e][] `f',
])
def test_conversion_never_raises(markdown):
    assert isinstance(blogmark.markdown_to_html(markdown), str)


def test_conversion_is_deterministic():
    markdown = '# T\n\n- *a*\n- [b][x]\n\n[x]: /x "X"\n\nA|B\n--|:-:\n1|2\n'
    converter = Markdown(inline_syntaxes=[MentionSyntax()])
    first = converter.convert(markdown)
    assert converter.convert(markdown) == first
    assert Markdown(inline_syntaxes=[MentionSyntax()]).convert(markdown) == first


# Renderer

def test_attribute_order():
    img = Element('img', None, {'title': 't', 'class': 'c', 'alt': 'a', 'src': 's'})
    assert HtmlRenderer().render([img]) == '<img src="s" alt="a" class="c" title="t" />'


def test_newline_before_block_tags_only():
    nodes = [Element('p', [Text('a')]), Element('hr'), Element('em', [Text('b')])]
    assert HtmlRenderer().render(nodes) == '<p>a</p>\n<hr /><em>b</em>'


def test_text_is_not_escaped_by_renderer():
    assert HtmlRenderer().render([Text('<b>&amp;</b>')]) == '<b>&amp;</b>'


def test_unknown_nodes_are_skipped(caplog):
    assert HtmlRenderer().render([Text('a'), 42]) == 'a'
    assert 'Unknown node type: int' in caplog.text


def test_element_children_are_immutable():
    element = Element('p', [Text('a')])
    assert isinstance(element.children, tuple)
    assert Element('hr').is_empty


# Command line

def test_main_writes_html(tmp_path, capsys):
    path = tmp_path / 'article.md'
    path.write_text(u'# Hi', encoding='utf-8')
    assert blogmark.main([str(path)]) == 0
    assert capsys.readouterr().out == '<h1>Hi</h1>\n'


def test_main_writes_output_file(tmp_path):
    path = tmp_path / 'article.md'
    path.write_text(u'# Hi', encoding='utf-8')
    output = tmp_path / 'article.html'
    blogmark.main([str(path), '-o', str(output)])
    assert output.read_text(encoding='utf-8') == '<h1>Hi</h1>\n'


def test_main_dumps_nodes(tmp_path, capsys):
    path = tmp_path / 'article.md'
    path.write_text(u'# Hi', encoding='utf-8')
    blogmark.main(['--dump', str(path)])
    out = capsys.readouterr().out
    assert "'Element'" in out
    assert "'h1'" in out


def test_main_reads_stdin(monkeypatch, capsys):
    monkeypatch.setattr('sys.stdin', io.StringIO(u'*x*'))
    blogmark.main([])
    assert capsys.readouterr().out == '<p><em>x</em></p>\n'
