import asyncio
import json
import random

import pytest
import requests

from wordflower.catalog import HttpPuzzleValidator, LocalValidator, PuzzleCatalog
from wordflower.dictionary import DictionaryService, load_word_frequencies
from wordflower.errors import NotFoundError, TransportError
from wordflower.schemas import LetterConfiguration


class FakeResponse:
    def __init__(self, status_code=200, body=None, raise_json=False):
        self.status_code = status_code
        self._body = body
        self._raise_json = raise_json

    def json(self):
        if self._raise_json:
            raise ValueError('not json')
        return self._body


class FakeHttpSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def put(self, url, json=None, timeout=None):
        self.calls.append((url, json, timeout))
        if self.error is not None:
            raise self.error
        return self.response


class TestPuzzleCatalog:
    """Bundled catalog lookups and validation."""

    def test_loads_bundled_catalog(self, catalog):
        assert len(catalog) == 3
        assert catalog.ids == ['1', '2', '3']
        assert '1' in catalog and 1 in catalog

    def test_lookup_puzzle(self, catalog):
        puzzle = catalog.lookup_puzzle('1')
        assert puzzle.configuration.centerLetter == 'G'
        assert puzzle.configuration.wordCount == 16
        assert 'geological' in puzzle.pangrams
        assert catalog.lookup_puzzle(' 2 ').id == '2'

    def test_lookup_unknown_raises(self, catalog):
        with pytest.raises(NotFoundError) as exc:
            catalog.lookup_puzzle('999')
        assert exc.value.key == '999'

    def test_pick_puzzle_returns_catalog_member(self, catalog):
        rng = random.Random(5)
        picked = {catalog.pick_puzzle(rng).id for _ in range(30)}
        assert picked <= set(catalog.ids)
        assert len(picked) > 1

    def test_validate(self, catalog):
        verdict = catalog.validate('1', 'GOAL')
        assert verdict.isValid and not verdict.isPangram
        verdict = catalog.validate('1', 'geological')
        assert verdict.isValid and verdict.isPangram
        assert not catalog.validate('1', 'logo').isValid

    def test_answer_words_is_a_copy(self, catalog):
        words = catalog.answer_words('3')
        words.clear()
        assert len(catalog.answer_words('3')) == 12

    def test_summary_hides_answers(self, catalog):
        summary = PuzzleCatalog.summary(catalog.lookup_puzzle('2')).model_dump()
        assert summary == {
            'gameId': '2',
            'centerLetter': 'A',
            'outerLetters': ['T', 'R', 'I', 'N', 'G', 'E'],
            'wordCount': 16,
            'pangramCount': 3,
        }

    def test_empty_catalog_rejected(self, tmp_path):
        path = tmp_path / 'empty.json'
        path.write_text('[]')
        with pytest.raises(ValueError):
            PuzzleCatalog.load(path)

    def test_load_custom_file(self, tmp_path):
        path = tmp_path / 'one.json'
        path.write_text(json.dumps([{
            'id': 42,
            'central': 'g',
            'letters': ['l', 'o', 'i', 'c', 'a', 'e'],
            'words': ['Goal', 'logic'],
            'pangrams': [],
        }]))
        catalog = PuzzleCatalog.load(path)
        puzzle = catalog.lookup_puzzle('42')
        assert puzzle.answerWords == ['goal', 'logic']
        assert puzzle.configuration.wordCount == 2


class TestDictionary:
    """Frequency list and live answer-set derivation."""

    def test_load_bundled_word_list(self):
        entries = load_word_frequencies()
        assert entries[0] == ('the', 23135851162.0)
        assert all(w.isalpha() and w == w.lower() for w, _ in entries)

    def test_dictionary_service(self):
        d = DictionaryService([('goal', 3.0), ('Logic', 2.0), ('goal', 1.0)])
        assert len(d) == 3
        assert d.is_known('GOAL')
        assert not d.is_known('')
        assert d.frequency('goal') == 3.0
        assert d.frequency('zzzz') is None

    def test_answer_set_from_bundled_list(self):
        d = DictionaryService()
        config = LetterConfiguration(centerLetter='G', outerLetters=['L', 'O', 'I', 'C', 'A', 'E'])
        words = d.answer_set(config)
        assert words[:4] == ['goal', 'college', 'legal', 'logo']
        assert 'the' not in words and 'cat' not in words and 'gal' not in words
        assert 'eagle' in words
        assert d.answer_set(config, cap=2) == ['goal', 'college']

    def test_catalog_from_dictionary(self):
        d = DictionaryService()
        configs = {
            'g': LetterConfiguration(centerLetter='G', outerLetters=['L', 'O', 'I', 'C', 'A', 'E']),
        }
        catalog = PuzzleCatalog.from_dictionary(d, configs, cap=60)
        puzzle = catalog.lookup_puzzle('g')
        assert puzzle.configuration.wordCount == len(puzzle.answerWords)
        assert set(puzzle.pangrams) == {'ecological', 'geological'}
        assert puzzle.configuration.pangramCount == 2
        assert catalog.validate('g', 'logo').isValid


class TestValidators:
    def test_local_validator(self, catalog):
        verdict = asyncio.run(LocalValidator(catalog).validate('2', 'granite'))
        assert verdict.isValid and verdict.isPangram

    def test_http_validator_success(self):
        session = FakeHttpSession(FakeResponse(200, {'isValid': True, 'isPangram': False}))
        validator = HttpPuzzleValidator('http://game.test/api/', timeout=2.0, session=session)
        verdict = asyncio.run(validator.validate('1', 'goal'))
        assert verdict.isValid
        assert session.calls == [('http://game.test/api/game', {'gameId': '1', 'word': 'goal'}, 2.0)]

    def test_http_validator_not_found(self):
        validator = HttpPuzzleValidator('http://game.test', session=FakeHttpSession(FakeResponse(404, {})))
        with pytest.raises(NotFoundError):
            asyncio.run(validator.validate('9', 'goal'))

    @pytest.mark.parametrize('session', [
        FakeHttpSession(error=requests.ConnectionError('refused')),
        FakeHttpSession(FakeResponse(500, {'error': 'boom'})),
        FakeHttpSession(FakeResponse(200, raise_json=True)),
        FakeHttpSession(FakeResponse(200, {'unexpected': 1})),
    ])
    def test_http_validator_transport_errors(self, session):
        validator = HttpPuzzleValidator('http://game.test', session=session)
        with pytest.raises(TransportError):
            asyncio.run(validator.validate('1', 'goal'))
