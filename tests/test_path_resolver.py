from __future__ import annotations

import os

import pytest

from filebrowser.config import RuntimeConfig
from filebrowser.errors import PathTraversal, ValidationFailed
from filebrowser.services.paths import PathResolver, normalize_api_path


def test_resolve_root_and_children(root, resolver):
    (root / 'a.txt').write_text('x')

    assert resolver.resolve('/') == root
    assert resolver.resolve('') == root
    assert resolver.resolve('/a.txt') == root / 'a.txt'
    assert resolver.resolve('a.txt') == root / 'a.txt'


def test_backslashes_are_forward_slashes(root, resolver):
    (root / 'sub').mkdir()
    (root / 'sub' / 'f.txt').write_text('x')

    assert resolver.resolve('\\sub\\f.txt') == root / 'sub' / 'f.txt'


@pytest.mark.parametrize('raw', ['/../secret', '../../etc/passwd', '/sub/../../x', '..', '/..'])
def test_dotdot_escape_is_forbidden(root, resolver, raw):
    (root / 'sub').mkdir()
    with pytest.raises(PathTraversal) as exc:
        resolver.resolve(raw)
    assert exc.value.status_code == 403
    assert exc.value.code == 'forbidden'


def test_dotdot_that_stays_inside_is_allowed(root, resolver):
    (root / 'sub').mkdir()
    assert resolver.resolve('/sub/../sub') == root / 'sub'


def test_absolute_looking_path_stays_under_root(root, resolver):
    target = resolver.resolve('/etc/passwd')
    assert target == root / 'etc' / 'passwd'
    assert not target.exists()


def test_percent_encoded_dots_are_literal_names(root, resolver):
    # Decoding happens once at the HTTP layer; anything left is just a name.
    assert resolver.resolve('/%2e%2e/secret') == root / '%2e%2e' / 'secret'


def test_nul_byte_is_rejected(resolver):
    with pytest.raises(ValidationFailed):
        resolver.resolve('/a\x00b')


def test_leaf_symlink_escape_is_forbidden(root, outside, resolver, symlink):
    symlink(outside / 'secret.txt', root / 'link-out')

    with pytest.raises(PathTraversal):
        resolver.resolve('/link-out')


def test_symlinked_parent_escape_is_forbidden_for_new_paths(root, outside, resolver, symlink):
    symlink(outside, root / 'dir-out')

    with pytest.raises(PathTraversal):
        resolver.resolve('/dir-out/new-file.txt')


def test_symlink_inside_root_resolves_to_target(root, resolver, symlink):
    (root / 'real').mkdir()
    symlink(root / 'real', root / 'alias')

    assert resolver.resolve('/alias') == root / 'real'


def test_symlinked_root_is_anchored_on_realpath(tmp_path, symlink):
    real = tmp_path / 'real-root'
    real.mkdir()
    (real / 'f.txt').write_text('x')
    link = tmp_path / 'root-link'
    symlink(real, link)

    resolver = PathResolver(RuntimeConfig(str(link)))
    assert resolver.resolve('/f.txt') == real.resolve() / 'f.txt'


def test_no_follow_keeps_the_link_itself(root, outside, resolver, symlink):
    symlink(outside / 'secret.txt', root / 'link-out')

    assert resolver.resolve_no_follow('/link-out') == root / 'link-out'
    assert resolver.resolve_no_follow('/') == root


def test_no_follow_still_checks_the_parent(root, outside, resolver, symlink):
    symlink(outside, root / 'dir-out')

    with pytest.raises(PathTraversal):
        resolver.resolve_no_follow('/dir-out/secret.txt')
    with pytest.raises(PathTraversal):
        resolver.resolve_no_follow('/../outside')


def test_sibling_with_root_prefix_is_not_inside(root, resolver):
    sibling = root.parent / (root.name + '-evil')
    sibling.mkdir()

    with pytest.raises(PathTraversal):
        resolver.resolve('/../' + sibling.name)


def test_to_api_path(root, resolver):
    assert resolver.to_api_path(root) == '/'
    assert resolver.to_api_path(root / 'a' / 'b.txt') == '/a/b.txt'


def test_normalize_api_path():
    assert normalize_api_path(None) == '/'
    assert normalize_api_path('a/b') == '/a/b'
    assert normalize_api_path('\\a\\b') == '/a/b'


def test_containment_holds_for_hostile_inputs(root, resolver):
    (root / 'sub').mkdir()
    hostile = ['/../', '/sub/../../', '....//', '/./../..', '//etc/passwd', '/sub/./../../../tmp', '\\..\\..']
    for raw in hostile:
        try:
            resolved = resolver.resolve(raw)
        except PathTraversal:
            continue
        real = os.fspath(resolved)
        assert real == os.fspath(root) or real.startswith(os.fspath(root) + os.sep), raw
