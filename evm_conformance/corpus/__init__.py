from evm_conformance.corpus.source import CorpusSource, GitCorpusSource, LocalDirectorySource
from evm_conformance.corpus.sync import CorpusSynchronizer, SyncDiff, split_fixture_path

__all__ = [
    "CorpusSource",
    "CorpusSynchronizer",
    "GitCorpusSource",
    "LocalDirectorySource",
    "SyncDiff",
    "split_fixture_path",
]
