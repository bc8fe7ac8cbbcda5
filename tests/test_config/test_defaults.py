"""Tests for defaults and the merge helper."""

from assetflow.config.defaults import DEFAULT_OPTIONS, merge, top_directory


class TestMerge:
    """Tests for merge function."""

    def test_nested_merge(self):
        result = merge({'a': 1, 'b': {'c': 2}}, {'b': {'d': 3}})
        assert result == {'a': 1, 'b': {'c': 2, 'd': 3}}

    def test_lists_replace(self):
        result = merge({'lint': ['a', 'b']}, {'lint': ['c']})
        assert result == {'lint': ['c']}

    def test_none_override_keeps_default(self):
        result = merge({'port': 4000}, {'port': None})
        assert result == {'port': 4000}

    def test_none_overrides(self):
        assert merge({'a': 1}, None) == {'a': 1}

    def test_defaults_not_mutated(self):
        defaults = {'b': {'c': 2}}
        result = merge(defaults, {'b': {'c': 5}})

        result['b']['c'] = 99
        assert defaults == {'b': {'c': 2}}

    def test_module_defaults_not_mutated(self):
        merge(DEFAULT_OPTIONS, {'port': 1})
        assert DEFAULT_OPTIONS['port'] == 4000


class TestTopDirectory:
    """Tests for top_directory function."""

    def test_glob_pattern(self):
        assert top_directory('app/assets/**/*') == 'assets'

    def test_single_level(self):
        assert top_directory('static/*') == 'static'

    def test_plain_directory(self):
        assert top_directory('assets') == 'assets'

    def test_only_wildcards(self):
        assert top_directory('**/*') == ''
