"""Tests for CLI command handlers."""

from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest

from cli import commands
from cli.commands import (
    format_batch_outcomes,
    handle_apply,
    handle_batch_apply,
    handle_batch_create,
    handle_create,
    handle_info,
    handle_verify,
)
from cli.main import extract_global_flags, main
from cli.models import (
    ApplyCommand,
    BatchApplyCommand,
    BatchCreateCommand,
    CreateCommand,
    InfoCommand,
    VerifyCommand,
)
from cli.parser import ParseError
from common.exceptions import ErrorKind
from common.types import BatchStatus
from patcher.generator import PatchGenerator
from patcher.results import (
    ApplyResult,
    BatchOutcome,
    FileInfo,
    PatchMetrics,
    PatchResult,
    TimingMetrics,
    VerifyResult,
)


def _patch_result(chunk_count: int = 0) -> PatchResult:
    return PatchResult(
        success=True,
        patch_file=FileInfo(exists=True, size=1536, size_formatted="1.5 KB", path="update.xdelta"),
        metrics=PatchMetrics(
            duration_ms=1500,
            duration_formatted="1.5s",
            compression_ratio=80,
            original_size=8000,
            new_size=8192,
            patch_size=1536,
            tier="extreme" if chunk_count else "normal",
            chunk_count=chunk_count,
        ),
    )


@pytest.fixture
def mock_generator():
    generator = Mock(spec=PatchGenerator)
    generator.create_patch = AsyncMock(return_value=_patch_result())
    generator.create_patch_with_chunks = AsyncMock(return_value=_patch_result(chunk_count=3))
    generator.apply_patch = AsyncMock(return_value=ApplyResult(
        success=True,
        new_file=FileInfo(exists=True, size=8192, size_formatted="8 KB", path="new.bin"),
        metrics=TimingMetrics.from_ms(20),
    ))
    generator.verify_patch = AsyncMock(return_value=VerifyResult(success=True, metrics=TimingMetrics.from_ms(5)))
    return generator


@pytest.mark.asyncio
async def test_handle_create(mock_generator):
    """Test create command handler with mocked generator."""
    cmd = CreateCommand(old_file='old.bin', new_file='new.bin', patch_file='update.xdelta', compression=6)

    output = await handle_create(cmd, generator=mock_generator)

    assert output.success
    assert output.message.startswith('Patch created: update.xdelta')
    assert '1.5 KB' in output.message
    assert 'normal' in output.message
    mock_generator.create_patch.assert_awaited_once()
    args, kwargs = mock_generator.create_patch.call_args
    assert args == ('old.bin', 'new.bin', 'update.xdelta')
    assert kwargs['compression'] == 6
    assert kwargs['verify'] is None
    mock_generator.create_patch_with_chunks.assert_not_awaited()


@pytest.mark.asyncio
async def test_handle_create_chunked(mock_generator):
    cmd = CreateCommand(
        old_file='old.bin', new_file='new.bin', patch_file='update.xdelta',
        chunk_size=4096, chunked=True, verify=False,
    )

    output = await handle_create(cmd, generator=mock_generator)

    assert '3 chunks' in output.message
    kwargs = mock_generator.create_patch_with_chunks.call_args.kwargs
    assert kwargs['chunk_size'] == 4096
    assert kwargs['verify'] is False


@pytest.mark.asyncio
async def test_handle_create_failure(mock_generator):
    mock_generator.create_patch.return_value = PatchResult(
        success=False,
        error='Original file not found: old.bin',
        error_kind=ErrorKind.MISSING_INPUT,
        metrics=PatchMetrics.from_ms(1),
    )

    output = await handle_create(
        CreateCommand(old_file='old.bin', new_file='new.bin', patch_file='p'), generator=mock_generator
    )

    assert not output.success
    assert output.message == 'Error [missing_input]: Original file not found: old.bin'


@pytest.mark.asyncio
async def test_handle_apply(mock_generator):
    cmd = ApplyCommand(old_file='old.bin', patch_file='update.xdelta', output_file='new.bin', timeout=5)

    output = await handle_apply(cmd, generator=mock_generator)

    assert output.success
    assert output.message.startswith('Patch applied: new.bin')
    kwargs = mock_generator.apply_patch.call_args.kwargs
    assert kwargs['timeout'] == 5


@pytest.mark.asyncio
async def test_handle_verify(mock_generator):
    output = await handle_verify(
        VerifyCommand(old_file='old.bin', patch_file='p', expected_file='new.bin'), generator=mock_generator
    )

    assert output.success
    assert 'Patch is valid' in output.message


@pytest.mark.asyncio
async def test_handle_verify_mismatch(mock_generator):
    mock_generator.verify_patch.return_value = VerifyResult(
        success=False,
        error='Patched output differs from expected file new.bin',
        error_kind=ErrorKind.VERIFICATION_MISMATCH,
        metrics=TimingMetrics.from_ms(5),
    )

    output = await handle_verify(
        VerifyCommand(old_file='old.bin', patch_file='p', expected_file='new.bin'), generator=mock_generator
    )

    assert not output.success
    assert output.message.startswith('Error [verification_mismatch]')


def test_format_batch_outcomes():
    outcomes = [
        BatchOutcome(success=True, file='a.bin', status=BatchStatus.SUCCESS),
        BatchOutcome(success=False, file='b.bin', status=BatchStatus.ERROR, error='boom'),
        BatchOutcome(success=False, file='c.bin', status=BatchStatus.SKIPPED, error='Missing counterpart: x'),
    ]

    lines = format_batch_outcomes(outcomes).splitlines()

    assert lines[0] == '  [SUCCESS] a.bin'
    assert lines[1] == '  [ERROR  ] b.bin: boom'
    assert lines[2] == '  [SKIPPED] c.bin: Missing counterpart: x'
    assert lines[3] == '3 files: 1 succeeded, 1 failed, 1 skipped'


@pytest.mark.asyncio
async def test_handle_batch_round_trip(generator, temp_config, tmp_path):
    """Batch commands run end to end through a real generator and the fake tool."""
    old_dir, new_dir = tmp_path / 'old', tmp_path / 'new'
    old_dir.mkdir()
    new_dir.mkdir()
    (old_dir / 'a.bin').write_bytes(b'aaaa')
    (new_dir / 'a.bin').write_bytes(b'aaaabbbb')
    (new_dir / 'extra.bin').write_bytes(b'no original')

    created = await handle_batch_create(
        BatchCreateCommand(old_dir=str(old_dir), new_dir=str(new_dir), patches_dir=str(tmp_path / 'patches')),
        generator=generator, config=temp_config,
    )
    applied = await handle_batch_apply(
        BatchApplyCommand(old_dir=str(old_dir), patches_dir=str(tmp_path / 'patches'), output_dir=str(tmp_path / 'out')),
        generator=generator, config=temp_config,
    )

    assert created.success
    assert '2 files: 1 succeeded, 0 failed, 1 skipped' in created.message
    assert applied.success
    assert (tmp_path / 'out' / 'a.bin').read_bytes() == b'aaaabbbb'


@pytest.mark.asyncio
async def test_handle_batch_missing_directory(generator, temp_config, tmp_path):
    output = await handle_batch_create(
        BatchCreateCommand(old_dir=str(tmp_path / 'nope'), new_dir=str(tmp_path), patches_dir=str(tmp_path / 'p')),
        generator=generator, config=temp_config,
    )

    assert not output.success
    assert output.message.startswith('Error [missing_input]')


@pytest.mark.asyncio
async def test_handle_info(generator, make_file, work_dir):
    old_path = make_file('old.bin', b'0123456789')
    new_path = make_file('new.bin', b'0123456789ab')
    patch_path = str(work_dir / 'update.xdelta')
    await generator.create_patch_with_chunks(old_path, new_path, patch_path, chunk_size=4)
    other = make_file('other.xdelta', b'x' * 10)

    output = await handle_info(InfoCommand(patch_file=patch_path, compare_with=other))

    assert output.success
    assert 'Format:      chunked' in output.message
    assert 'Chunks:      3' in output.message
    assert 'Sizes:       10 -> 12 bytes' in output.message
    assert 'Compared with' in output.message


@pytest.mark.asyncio
async def test_handle_info_missing(tmp_path):
    output = await handle_info(InfoCommand(patch_file=str(tmp_path / 'missing.xdelta')))

    assert not output.success
    assert output.message.startswith('Error:')


def test_get_generator_uses_config(temp_config, monkeypatch, fake_tool):
    temp_config.set('tool_path', str(fake_tool.path))
    temp_config.set('compression', 4)
    monkeypatch.setattr(commands, '_config', temp_config)
    monkeypatch.setattr(commands, '_generator', None)

    first = commands.get_generator()
    assert commands.get_generator() is first
    assert first.options.compression == 4
    assert first.options.tool_path == str(fake_tool.path)

    replaced = commands.get_generator(tool_path='/usr/local/bin/xdelta3')
    assert replaced is not first
    assert replaced.options.tool_path == '/usr/local/bin/xdelta3'
    assert replaced.options.compression == 4


def test_extract_global_flags():
    args, debug, tool_path = extract_global_flags(['--debug', 'create', 'a', '--tool', '/bin/x', 'b', 'c'])

    assert args == ['create', 'a', 'b', 'c']
    assert debug
    assert tool_path == '/bin/x'
    with pytest.raises(ParseError):
        extract_global_flags(['create', '--tool'])


def test_main_runs_single_command(temp_config, monkeypatch, fake_tool, make_file, work_dir, capsys):
    monkeypatch.setattr(commands, '_config', temp_config)
    monkeypatch.setattr(commands, '_generator', None)
    old_path = make_file('old.bin', b'v1')
    new_path = make_file('new.bin', b'v2')
    patch_path = str(work_dir / 'update.xdelta')

    exit_code = main(['--tool', str(fake_tool.path), 'create', old_path, new_path, patch_path])

    assert exit_code == 0
    assert Path(patch_path).exists()
    assert 'Patch created' in capsys.readouterr().out


def test_main_parse_error_exit_code(capsys):
    assert main(['create', 'only-one']) == 2
    assert 'requires exactly 3 arguments' in capsys.readouterr().out


def test_main_failure_exit_code(temp_config, monkeypatch, fake_tool, tmp_path):
    monkeypatch.setattr(commands, '_config', temp_config)
    monkeypatch.setattr(commands, '_generator', None)

    exit_code = main([
        '--tool', str(fake_tool.path),
        'apply', str(tmp_path / 'a'), str(tmp_path / 'p'), str(tmp_path / 'o'),
    ])

    assert exit_code == 1
