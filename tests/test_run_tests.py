"""Test the argument building of the test runner script."""

from pathlib import Path

import run_tests


def test_full_run_enforces_coverage():
    args = run_tests.build_args()
    assert '--cov=pcapdiag' in args
    assert '--cov-fail-under=80' in args
    assert not any(a.endswith('.py') for a in args)


def test_module_run_skips_threshold():
    args = run_tests.build_args(module='test_flow')
    assert Path(args[-3]).name == 'test_flow.py'
    assert Path(args[-3]).parent == run_tests.TESTS_DIR
    assert not any(a.startswith('--cov-fail-under') for a in args)


def test_keyword_and_no_coverage():
    args = run_tests.build_args(keyword='vlan', coverage=False, verbose=True)
    assert args[-2:] == ['-k', 'vlan']
    assert '-v' in args
    assert not any(a.startswith('--cov') for a in args)


def test_skip_optional_ignores_scapy_module():
    args = run_tests.build_args(coverage=False, skip_optional=True)
    assert args[-1].startswith('--ignore=')
    assert args[-1].endswith('test_scapy_captures.py')


def test_list_modules(capsys):
    run_tests.list_modules()
    out = capsys.readouterr().out
    assert 'test_analyzer' in out
    assert 'test_scapy_captures  (needs scapy)' in out
