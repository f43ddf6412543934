"""Tests for termqtt.cli module."""

import pytest
from termqtt import __version__
from termqtt.app import Explorer
from termqtt.cli import build_parser, has_overrides, apply_overrides, clear_storage, main
from termqtt.config import BrokerConfig


@pytest.fixture
def config_home(tmp_path, monkeypatch):
    monkeypatch.setenv('XDG_CONFIG_HOME', str(tmp_path))
    for name in ('BROKER', 'PORT', 'USER', 'PASSWORD', 'TLS', 'ROOT_TOPIC'):
        monkeypatch.delenv('TERMQTT_' + name, raising=False)
    return tmp_path / 'termqtt'


class TestParser:
    """Test argument parsing."""

    def test_defaults(self):
        args = build_parser().parse_args([])
        assert has_overrides(args) is False
        assert args.clear_storage is None
        assert args.log_level == 'WARNING'

    def test_repeated_root_topics(self):
        args = build_parser().parse_args(['-b', 'h', '-P', '1884', '-r', 'a/#', '-r', 'b/#'])
        assert args.broker == 'h'
        assert args.port == 1884
        assert args.root_topics == ['a/#', 'b/#']
        assert has_overrides(args) is True

    def test_clear_storage_without_pattern(self):
        assert build_parser().parse_args(['--clear-storage']).clear_storage == ''
        assert build_parser().parse_args(['--clear-storage', '*broker*']).clear_storage == '*broker*'

    def test_version(self, capsys):
        with pytest.raises(SystemExit):
            build_parser().parse_args(['--version'])
        assert __version__ in capsys.readouterr().out


class TestApplyOverrides:
    """Test merging command line values into a config."""

    def test_overrides(self):
        args = build_parser().parse_args(
            ['-b', 'h', '-P', '8883', '-u', 'alice', '-w', 'pw', '-t', '-r', 'a/#', '-r', 'b/#'])
        base = BrokerConfig()
        config = apply_overrides(base, args)

        assert config.host == 'h'
        assert config.port == 8883
        assert config.username == 'alice'
        assert config.password == 'pw'
        assert config.tls is True
        assert config.topic_filter == 'a/#'
        assert config.extra_topic_filters == ['b/#']
        assert config.default_topic == 'a/#'
        assert base == BrokerConfig()

    def test_keeps_default_topic(self):
        args = build_parser().parse_args(['-r', 'a/#'])
        config = apply_overrides(BrokerConfig(default_topic='cmd/x'), args)
        assert config.default_topic == 'cmd/x'

    def test_partial(self):
        args = build_parser().parse_args(['-P', '1999'])
        config = apply_overrides(BrokerConfig(host='kept', tls=True), args)
        assert config.host == 'kept'
        assert config.port == 1999
        assert config.tls is True


class TestClearStorage:
    """Test --clear-storage."""

    def test_assume_yes(self, storage, capsys):
        storage.save('broker', {})
        assert clear_storage(storage, '', assume_yes=True) == 0
        assert storage.files() == []
        assert 'Removed termqtt_broker.json' in capsys.readouterr().out

    def test_declined(self, storage, monkeypatch, capsys):
        storage.save('broker', {})
        monkeypatch.setattr('builtins.input', lambda prompt: 'n')
        assert clear_storage(storage, '', assume_yes=False) == 1
        assert storage.files() == ['termqtt_broker.json']
        assert 'Aborted.' in capsys.readouterr().out

    def test_confirmed_with_pattern(self, storage, monkeypatch):
        storage.save('broker', {})
        storage.save('filters', [])
        monkeypatch.setattr('builtins.input', lambda prompt: 'yes')
        assert clear_storage(storage, '*filters*') == 0
        assert storage.files() == ['termqtt_broker.json']

    def test_eof_declines(self, storage, monkeypatch):
        def no_input(prompt):
            raise EOFError
        monkeypatch.setattr('builtins.input', no_input)
        assert clear_storage(storage, '') == 1


class TestMain:
    """Test the entry point."""

    def test_clear_storage(self, config_home):
        config_home.mkdir()
        (config_home / 'termqtt_broker.json').write_text('{}')
        assert main(['--clear-storage', '-y']) == 0
        assert list(config_home.iterdir()) == []

    def test_prints_messages(self, config_home, monkeypatch, capsys):
        seen = {}

        def fake_run(self):
            seen['broker'] = self.state.broker
            self._on_message('plant/pump', '{"on": true}')

        monkeypatch.setattr(Explorer, 'run', fake_run)
        assert main(['-b', 'cli.test', '-r', 'plant/#']) == 0

        assert seen['broker'].host == 'cli.test'
        assert seen['broker'].topic_filter == 'plant/#'
        assert 'plant/pump {"on": true}' in capsys.readouterr().out
