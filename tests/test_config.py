import json

import pytest

from searchbackup.config import IndexHandle, TransferConfig, load_config
from searchbackup.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in (
        "SEARCH_BACKUP_SOURCE_SERVICE", "SEARCH_BACKUP_SOURCE_KEY", "SEARCH_BACKUP_SOURCE_INDEX",
        "SEARCH_BACKUP_TARGET_SERVICE", "SEARCH_BACKUP_TARGET_KEY", "SEARCH_BACKUP_TARGET_INDEX",
        "SEARCH_BACKUP_DIRECTORY", "SEARCH_BACKUP_BATCH_SIZE", "SEARCH_BACKUP_PARALLEL_JOBS",
        "SEARCH_BACKUP_INDEXING_DELAY", "SEARCH_BACKUP_API_VERSION",
    ):
        monkeypatch.delenv(name, raising=False)


def write_settings(tmp_path, **settings):
    path = tmp_path / "appsettings.json"
    path.write_text(json.dumps(settings), encoding="utf-8")
    return path


def test_full_settings(tmp_path):
    path = write_settings(
        tmp_path,
        SourceSearchServiceName="src",
        SourceAdminKey="k1",
        SourceIndexName="hotels",
        TargetSearchServiceName="https://dst.search.windows.net/",
        TargetAdminKey="k2",
        TargetIndexName="hotels-copy",
        BackupDirectory=str(tmp_path / "backup"),
    )

    config = load_config(path)

    assert config.source == IndexHandle("src", "k1", "hotels")
    assert config.source.endpoint == "https://src.search.windows.net"
    assert config.target.endpoint == "https://dst.search.windows.net"
    assert config.backup_index_name == "hotels"
    assert config.batch_size == 500
    assert config.parallel_jobs == 10
    assert config.indexing_delay_seconds == 10


def test_unconfigured_sides(tmp_path):
    config = load_config(write_settings(tmp_path, BackupDirectory="backup", SourceIndexName="hotels"))

    assert config.source is None
    assert config.target is None
    assert config.backup_index_name == "hotels"


def test_missing_credentials(tmp_path):
    path = write_settings(
        tmp_path, TargetSearchServiceName="dst", TargetIndexName="copy", BackupDirectory="backup"
    )
    with pytest.raises(ConfigurationError, match="TargetAdminKey"):
        load_config(path)


def test_environment_overrides_file(tmp_path, monkeypatch):
    path = write_settings(tmp_path, BackupDirectory="from-file", MaxBatchSize=100)
    monkeypatch.setenv("SEARCH_BACKUP_DIRECTORY", "from-env")
    monkeypatch.setenv("SEARCH_BACKUP_BATCH_SIZE", "250")

    config = load_config(path)

    assert config.backup_directory.name == "from-env"
    assert config.batch_size == 250


def test_overrides_win(tmp_path):
    path = write_settings(tmp_path, BackupDirectory="backup", ParallelizedJobs=4)

    config = load_config(path, overrides={"ParallelizedJobs": 2, "MaxBatchSize": None})

    assert config.parallel_jobs == 2
    assert config.batch_size == 500


@pytest.mark.parametrize(
    "settings",
    [
        {},
        {"BackupDirectory": "backup", "MaxBatchSize": 1001},
        {"BackupDirectory": "backup", "MaxBatchSize": "many"},
        {"BackupDirectory": "backup", "MaxBatchSize": 1.5},
        {"BackupDirectory": "backup", "ParallelizedJobs": "2.5"},
        {"BackupDirectory": "backup", "ParallelizedJobs": 0},
    ],
)
def test_invalid_settings(tmp_path, settings):
    with pytest.raises(ConfigurationError):
        load_config(write_settings(tmp_path, **settings))


def test_missing_settings_file(tmp_path):
    with pytest.raises(ConfigurationError, match="not found"):
        load_config(tmp_path / "missing.json")


def test_backup_index_name_defaults_to_source(tmp_path):
    config = TransferConfig(tmp_path, source=IndexHandle("src", "key", "hotels"))
    assert config.backup_index_name == "hotels"


def test_describe_hides_keys(tmp_path):
    config = TransferConfig(tmp_path, source=IndexHandle("src", "secret-key", "hotels"))

    summary = config.describe()
    assert "hotels" in summary
    assert "secret-key" not in summary
    assert "secret-key" not in repr(config)


def test_whole_float_is_accepted(tmp_path):
    config = load_config(write_settings(tmp_path, BackupDirectory="backup", MaxBatchSize=250.0))
    assert config.batch_size == 250
