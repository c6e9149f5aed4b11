"""
Tests for dataset entry validation and concurrent reference set building.
"""
import asyncio

import numpy as np
import pytest

from facematch.core.face_detection import ModelLoadError
from facematch.core.reference_set import (
    EmptyReferenceSetError,
    InvalidEntryError,
    build_reference_set,
    parse_entry,
)
from tests.fakes import FakeEngine, FakeFetcher, face


class TestParseEntry:

    def test_numeric_id_becomes_string_label(self):
        entry = parse_entry({'id': 42, 'imglink': 'https://example.com/a.jpg'})
        assert entry.label == '42'

    def test_integral_float_id_label(self):
        assert parse_entry({'id': 3.0, 'imglink': 'http://example.com/a.jpg'}).label == '3'

    def test_string_id(self):
        assert parse_entry({'id': 'alice', 'imglink': 'https://example.com/a.jpg'}).label == 'alice'

    def test_whitespace_id_is_kept(self):
        assert parse_entry({'id': '  ', 'imglink': 'https://example.com/a.jpg'}).label == '  '

    @pytest.mark.parametrize("raw, message", [
        ("https://example.com/a.jpg", "Invalid dataset entry format"),
        (None, "Invalid dataset entry format"),
        ({'imglink': 'https://example.com/a.jpg'}, "Missing required fields"),
        ({'id': 1}, "Missing required fields"),
        ({'id': '', 'imglink': 'https://example.com/a.jpg'}, "Missing required fields"),
        ({'id': 0, 'imglink': 'https://example.com/a.jpg'}, "Missing required fields"),
        ({'id': 1, 'imglink': ''}, "Missing required fields"),
        ({'id': 1, 'imglink': 'ftp://example.com/a.jpg'}, "Invalid image URL format"),
        ({'id': 1, 'imglink': 'not-a-url'}, "Invalid image URL format"),
    ])
    def test_rejects_bad_entries(self, raw, message):
        with pytest.raises(InvalidEntryError, match=message):
            parse_entry(raw)

    def test_rejects_boolean_id(self):
        with pytest.raises(InvalidEntryError):
            parse_entry({'id': True, 'imglink': 'https://example.com/a.jpg'})


@pytest.mark.asyncio
class TestBuildReferenceSet:

    async def test_keeps_processable_entries_in_dataset_order(self):
        engine = FakeEngine({
            'https://img/1.jpg': [face(0.0, 0.0)],
            'https://img/2.jpg': [face(1.0, 1.0)],
        })
        fetcher = FakeFetcher()
        dataset = [
            {'id': 1, 'imglink': 'https://img/1.jpg'},
            {'id': 'two', 'imglink': 'https://img/2.jpg'},
        ]

        reference_set = await build_reference_set(dataset, fetcher, engine)

        assert [r['label'] for r in reference_set] == ['1', 'two']
        assert len(reference_set[0]['descriptors']) == 1
        np.testing.assert_array_equal(reference_set[1]['descriptors'][0], face(1.0, 1.0))

    async def test_drops_failed_entries(self):
        engine = FakeEngine({
            'https://img/ok.jpg': [face(0.0, 0.0)],
            'https://img/landscape.jpg': [],
        })
        fetcher = FakeFetcher(failing=['https://img/missing.jpg'])
        dataset = [
            {'id': 1, 'imglink': 'https://img/missing.jpg'},
            {'id': 2, 'imglink': 'not-a-url'},
            {'id': 3, 'imglink': 'https://img/landscape.jpg'},
            {'id': 4, 'imglink': 'https://img/ok.jpg'},
            'garbage',
        ]

        reference_set = await build_reference_set(dataset, fetcher, engine)

        assert [r['label'] for r in reference_set] == ['4']
        # invalid entries never reach the network
        assert sorted(fetcher.calls) == [
            'https://img/landscape.jpg',
            'https://img/missing.jpg',
            'https://img/ok.jpg',
        ]

    async def test_every_entry_started_once(self):
        engine = FakeEngine({f'https://img/{i}.jpg': [face(float(i))] for i in range(5)})
        fetcher = FakeFetcher()
        dataset = [{'id': i + 1, 'imglink': f'https://img/{i}.jpg'} for i in range(5)]

        reference_set = await build_reference_set(dataset, fetcher, engine)

        assert len(reference_set) == 5
        assert sorted(fetcher.calls) == sorted(e['imglink'] for e in dataset)

    async def test_entries_run_concurrently(self):
        started = []
        release = asyncio.Event()

        class GatedFetcher(FakeFetcher):
            async def fetch_image(self, url):
                started.append(url)
                if len(started) == 2:
                    release.set()
                await release.wait()
                return await super().fetch_image(url)

        engine = FakeEngine({'https://img/a.jpg': [face(0.0)], 'https://img/b.jpg': [face(1.0)]})
        dataset = [
            {'id': 'a', 'imglink': 'https://img/a.jpg'},
            {'id': 'b', 'imglink': 'https://img/b.jpg'},
        ]

        # would dead-lock if entries were processed one after another
        reference_set = await asyncio.wait_for(
            build_reference_set(dataset, GatedFetcher(), engine), timeout=2
        )
        assert len(reference_set) == 2

    async def test_empty_result_raises(self):
        fetcher = FakeFetcher(failing=['https://img/1.jpg'])
        dataset = [
            {'id': 1, 'imglink': 'https://img/1.jpg'},
            {'id': 2, 'imglink': 'nope'},
        ]
        with pytest.raises(EmptyReferenceSetError):
            await build_reference_set(dataset, fetcher, FakeEngine())

    async def test_model_load_failure_is_not_swallowed(self):
        class BrokenEngine(FakeEngine):
            async def detect_single_face(self, image):
                raise ModelLoadError("weights missing")

        dataset = [{'id': 1, 'imglink': 'https://img/1.jpg'}]
        with pytest.raises(ModelLoadError, match="weights missing"):
            await build_reference_set(dataset, FakeFetcher(), BrokenEngine())
