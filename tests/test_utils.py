"""Tests for termqtt.utils module."""

import pytest
from termqtt.errors import ValidationError
from termqtt.utils import validate_topic_name, validate_topic_filter, build_client_id, sanitize_key


class TestValidateTopicName:
    """Test publish topic validation."""

    def test_valid_topic_stripped(self):
        assert validate_topic_name('  home/temp ') == 'home/temp'

    @pytest.mark.parametrize('topic', ['', '   ', None, 'home/+', 'home/#'])
    def test_invalid_topics(self, topic):
        with pytest.raises(ValidationError):
            validate_topic_name(topic)

    def test_too_long(self):
        with pytest.raises(ValidationError, match='maximum length'):
            validate_topic_name('a' * 11, max_length=10)


class TestValidateTopicFilter:
    """Test subscribe filter validation."""

    @pytest.mark.parametrize('topic_filter', ['#', 'a/#', 'a/+/b', '+', 'a/b'])
    def test_valid_filters(self, topic_filter):
        assert validate_topic_filter(topic_filter) == topic_filter

    @pytest.mark.parametrize('topic_filter', ['', 'a/#/b', 'a#', 'a/b+', '+a/b'])
    def test_invalid_filters(self, topic_filter):
        with pytest.raises(ValidationError):
            validate_topic_filter(topic_filter)


class TestBuildClientId:
    """Test client ID construction."""

    def test_format(self):
        assert build_client_id('termqtt', 'laptop', 42) == 'termqtt-laptop-42'

    def test_blank_base_uses_default(self):
        assert build_client_id('  ', 'h', 1) == 'termqtt-h-1'

    def test_defaults_from_process(self):
        client_id = build_client_id('probe')
        assert client_id.startswith('probe-')
        assert client_id.rsplit('-', 1)[1].isdigit()


class TestSanitizeKey:
    """Test storage key sanitizing."""

    def test_collapses_unsafe_runs(self):
        assert sanitize_key('mqtt.example.com') == 'mqtt_example_com'
        assert sanitize_key('--a..b--') == 'a_b'

    def test_empty(self):
        assert sanitize_key('') == ''
        assert sanitize_key(None) == ''
