import pytest

from kc2tg import document


class TestRead:
    def test_nested_path(self):
        assert document.read({'roles': {'realm': [1]}}, ('roles', 'realm'), list, []) == [1]

    def test_missing_intermediate_key(self):
        assert document.read({'roles': []}, ('roles', 'realm'), list, ['x']) == ['x']

    @pytest.mark.parametrize('value', [False, 0, ''])
    def test_falsy_values_are_preserved(self, value):
        shape = type(value)
        result = document.read({'key': value}, 'key', shape, 'default')
        assert result == value
        assert type(result) is shape

    def test_bool_is_not_an_int(self):
        assert document.read_int({'priority': True}, 'priority', 7) == 7

    def test_integral_float_is_an_int(self):
        assert document.read_int({'priority': 3.0}, 'priority', 0) == 3
        assert document.read_int({'priority': 3.5}, 'priority', 0) == 0

    def test_wrong_shape_gives_default(self):
        assert document.read_bool({'enabled': 'false'}, 'enabled', True) is True
        assert document.read_str({'name': 42}, 'name', 'x') == 'x'
        assert document.read_list({'users': {'alice': {}}}, 'users') == []

    def test_non_object_document(self):
        assert document.read_str(None, 'realm') == ''
        assert document.read_dict(['realm'], 'roles') == {}


class TestCollections:
    def test_records_skip_non_objects(self):
        assert document.read_records({'users': [{'username': 'a'}, 'b', None, 3]}, 'users') == [{'username': 'a'}]

    def test_strings_skip_non_strings(self):
        assert document.read_strings({'groups': ['/a', 1, None, '/b']}, 'groups') == ['/a', '/b']

    def test_string_map_stringifies_values(self):
        result = document.read_string_map({'config': {'a': True, 'b': 2, 'c': ['x'], 'd': None}}, 'config')
        assert result == {'a': 'true', 'b': '2', 'c': '["x"]'}

    def test_multi_map(self):
        result = document.read_multi_map({'attributes': {'dept': ['it', 1], 'site': 'paris'}}, 'attributes')
        assert result == {'dept': ['it', '1'], 'site': ['paris']}

    def test_config_value_takes_first_item(self):
        assert document.read_config_value({'vendor': ['ad', 'other']}, 'vendor') == 'ad'
        assert document.read_config_value({'vendor': []}, 'vendor', 'other') == 'other'
        assert document.read_config_value({'priority': 0}, 'priority', '5') == '0'


class TestRealmName:
    @pytest.mark.parametrize('export, expected', [
        ({'realm': 'demo'}, 'demo'),
        ({'realm': '   '}, None),
        ({'realm': 12}, None),
        ({}, None),
        ([], None),
        (None, None),
    ])
    def test_realm_name(self, export, expected):
        assert document.realm_name(export) == expected

    def test_plausible_document(self):
        assert document.is_plausible_realm_document({'realm': 'demo'})
        assert not document.is_plausible_realm_document({'enabled': True})
