import asyncio
import json
import threading
from collections import Counter

from wordflower.errors import TransportError
from wordflower.managers.session import SessionSettings
from wordflower.schemas import GameResult, ValidationVerdict

from conftest import hint_entry, run


async def type_word(session, word):
    for ch in word:
        await session.append_letter(ch)


async def play(session, word):
    await session.clear_buffer()
    await type_word(session, word)
    return await session.submit()


class FailingValidator:
    async def validate(self, puzzle_id, word):
        raise TransportError('validator unreachable')


class GatedValidator:
    """Holds every validation until released."""

    def __init__(self, catalog):
        self.catalog = catalog
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def validate(self, puzzle_id, word):
        self.started.set()
        await self.release.wait()
        return self.catalog.validate(puzzle_id, word)


class CountingCompletionStore:
    def __init__(self, inner):
        self.inner = inner
        self.calls = Counter()

    def is_completed(self, identity, puzzle_id):
        self.calls['is_completed'] += 1
        return self.inner.is_completed(identity, puzzle_id)

    def completed_ids(self, identity):
        self.calls['completed_ids'] += 1
        return self.inner.completed_ids(identity)

    def mark_completed(self, identity, puzzle_id, result):
        self.inner.mark_completed(identity, puzzle_id, result)


class ThreadRecordingSnapshotStore:
    """Notes which thread each call runs on."""

    def __init__(self, inner):
        self.inner = inner
        self.threads = set()

    def save(self, key, data):
        self.threads.add(threading.get_ident())
        self.inner.save(key, data)

    def load(self, key):
        self.threads.add(threading.get_ident())
        return self.inner.load(key)

    def clear(self, key):
        self.threads.add(threading.get_ident())
        self.inner.clear(key)


class TestLifecycle:
    """not-started -> playing -> ended, never backwards."""

    def test_start_and_end(self, make_session, analytics, completions, snapshots):
        async def scenario():
            session = make_session()
            assert session.state == 'not-started'
            assert await session.start('1')
            assert session.state == 'playing'
            assert session.puzzle.id == '1'
            assert session.timer_seconds == 1800
            assert snapshots.load(session.snapshot_key) is not None
            assert not await session.start('2')

            await play(session, 'goal')
            result = await session.end()
            assert session.state == 'ended'
            assert result.wordsFound == 1
            assert result.foundWords == ['goal']
            assert await session.end() is None
            return session, result

        session, result = run(scenario())
        assert analytics.types().count('game_started') == 1
        assert analytics.types().count('game_ended') == 1
        assert analytics.of_type('game_ended')[0]['reason'] == 'player'
        assert completions.is_completed('alice', '1').gameSessionData == result
        assert snapshots.load(session.snapshot_key) is None
        assert analytics.metadata[session.id].gameState == 'ended'

    def test_edits_ignored_unless_playing(self, make_session):
        async def scenario():
            session = make_session()
            assert not await session.append_letter('G')
            assert not await session.backspace()
            assert await session.shuffle() is None
            result = await session.submit()
            assert result.reason == 'not_playing'
            await session.start('1')
            await session.end()
            assert not await session.append_letter('G')
            assert (await session.submit()).reason == 'not_playing'

        run(scenario())

    def test_unknown_puzzle_falls_back_to_random(self, make_session, catalog):
        async def scenario():
            session = make_session()
            await session.start('999')
            return session

        session = run(scenario())
        assert session.state == 'playing'
        assert session.puzzle.id in catalog.ids

    def test_completed_puzzle_not_offered_again(self, make_session, completions):
        completions.mark_completed('alice', '1', GameResult(gameId='1'))
        completions.mark_completed('alice', '2', GameResult(gameId='2'))

        async def scenario():
            session = make_session()
            await session.start('1')
            return session

        assert run(scenario()).puzzle.id == '3'

    def test_snapshot_key_is_scoped_to_player_or_device(self, make_session):
        assert make_session().snapshot_key == 'wordflower_game:alice'
        first = make_session(user_id=None, device_id='device-a')
        second = make_session(user_id=None, device_id='device-b')
        assert first.snapshot_key != second.snapshot_key
        assert make_session(user_id=None).snapshot_key is None

    def test_anonymous_session_without_device_saves_nothing(self, make_session, snapshots):
        async def scenario():
            session = make_session(user_id=None)
            await session.start('1')
            await play(session, 'goal')
            await session.suspend()
            return await make_session(user_id=None).resume()

        assert run(scenario()) == 'absent'
        assert snapshots._data == {}

    def test_puzzle_choice_reads_completions_once(self, make_session, completions):
        completions.mark_completed('alice', '1', GameResult(gameId='1'))
        counting = CountingCompletionStore(completions)

        async def scenario():
            session = make_session(completions=counting)
            await session.start()
            return session

        session = run(scenario())
        assert session.puzzle.id != '1'
        assert counting.calls == {'completed_ids': 1}

    def test_store_calls_run_off_the_event_loop(self, make_session, snapshots):
        store = ThreadRecordingSnapshotStore(snapshots)

        async def scenario():
            session = make_session(snapshots=store)
            await session.start('1')
            await session.tick()
            return threading.get_ident()

        loop_thread = run(scenario())
        assert store.threads
        assert loop_thread not in store.threads


class TestBufferEdits:
    def test_append_backspace_clear(self, make_session):
        async def scenario():
            session = make_session()
            await session.start('1')
            assert await session.append_letter('g')
            assert not await session.append_letter('T')
            assert not await session.append_letter('GO')
            await type_word(session, 'OAL')
            assert session.current_word == 'GOAL'
            await session.backspace()
            assert session.current_word == 'GOA'
            await session.clear_buffer()
            assert session.current_word == ''
            await session.backspace()
            assert session.current_word == ''

        run(scenario())

    def test_shuffle_keeps_letters(self, make_session):
        async def scenario():
            session = make_session()
            await session.start('1')
            original = sorted(session.outer_letters)
            for _ in range(10):
                letters = await session.shuffle()
                assert sorted(letters) == original
            assert session.puzzle.configuration.outerLetters == ['L', 'O', 'I', 'C', 'A', 'E']

        run(scenario())


class TestSubmit:
    """Every outcome of a word submission."""

    def test_accepts_valid_word(self, make_session, analytics):
        async def scenario():
            session = make_session()
            await session.start('1')
            result = await play(session, 'goal')
            assert result.accepted
            assert not result.isPangram
            assert result.completionRate == 100 / 16
            assert session.current_word == ''
            assert session.found_words == ['goal']
            assert session.is_found('GOAL')

        run(scenario())
        assert analytics.of_type('word_found')[0]['word'] == 'goal'

    def test_pangram(self, make_session):
        async def scenario():
            session = make_session()
            await session.start('1')
            return await play(session, 'geological')

        result = run(scenario())
        assert result.accepted and result.isPangram

    def test_reject_reasons(self, make_session):
        async def scenario():
            session = make_session()
            await session.start('1')
            reasons = {}
            reasons['gal'] = (await play(session, 'gal')).reason
            await play(session, 'goal')
            reasons['goal'] = (await play(session, 'goal')).reason
            reasons['coal'] = (await play(session, 'coal')).reason
            reasons['logo'] = (await play(session, 'logo')).reason
            return session, reasons

        session, reasons = run(scenario())
        assert reasons == {
            'gal': 'too_short',
            'goal': 'already_found',
            'coal': 'invalid_composition',
            'logo': 'not_in_wordlist',
        }
        assert session.found_words == ['goal']
        # Rejected words stay in the buffer for editing
        assert session.current_word == 'LOGO'

    def test_validator_failure_keeps_buffer(self, make_session):
        async def scenario():
            session = make_session(validator=FailingValidator())
            await session.start('1')
            result = await play(session, 'goal')
            return session, result

        session, result = run(scenario())
        assert result.reason == 'validation_unavailable'
        assert session.current_word == 'GOAL'
        assert session.found_words == []

    def test_stale_validation_is_discarded(self, make_session, catalog):
        async def scenario():
            validator = GatedValidator(catalog)
            session = make_session(validator=validator)
            await session.start('1')
            await type_word(session, 'goal')
            pending = asyncio.create_task(session.submit())
            await validator.started.wait()
            await session.end()
            validator.release.set()
            return session, await pending

        session, result = run(scenario())
        assert result.reason == 'stale'
        assert session.found_words == []
        assert session.result.wordsFound == 0

    def test_ticks_continue_during_validation(self, make_session, catalog):
        async def scenario():
            validator = GatedValidator(catalog)
            session = make_session(validator=validator)
            await session.start('1')
            await type_word(session, 'goal')
            pending = asyncio.create_task(session.submit())
            await validator.started.wait()
            await session.tick()
            validator.release.set()
            return session, await pending

        session, result = run(scenario())
        assert result.accepted
        assert session.timer_seconds == 1799

    def test_letters_typed_during_validation_are_kept(self, make_session, catalog):
        async def scenario():
            validator = GatedValidator(catalog)
            session = make_session(validator=validator)
            await session.start('1')
            await type_word(session, 'goal')
            pending = asyncio.create_task(session.submit())
            await validator.started.wait()
            await type_word(session, 'lo')
            validator.release.set()
            return session, await pending

        session, result = run(scenario())
        assert result.accepted
        assert session.found_words == ['goal']
        assert session.current_word == 'GOALLO'


class TestTimer:
    def test_countdown_ends_session_exactly_once(self, make_session, analytics):
        async def scenario():
            session = make_session(settings=SessionSettings(time_budget=1800))
            await session.start('1')
            for _ in range(1800):
                await session.tick()
            assert session.state == 'ended'
            for _ in range(5):
                await session.tick()
            return session

        session = run(scenario())
        ended = analytics.of_type('game_ended')
        assert len(ended) == 1
        assert ended[0]['reason'] == 'timeout'
        assert ended[0]['totalTime'] == 1800
        assert session.result.totalTime == 1800

    def test_countup_never_auto_ends(self, make_session):
        async def scenario():
            session = make_session(settings=SessionSettings(timer_mode='countup', time_budget=5))
            await session.start('1')
            for _ in range(20):
                await session.tick()
            return session

        session = run(scenario())
        assert session.state == 'playing'
        assert session.timer_seconds == 20

    def test_hidden_page_pauses_clock(self, make_session):
        async def scenario():
            session = make_session()
            await session.start('1')
            await session.tick()
            session.set_visible(False)
            for _ in range(10):
                await session.tick()
            session.set_visible(True)
            await session.tick()
            return session

        assert run(scenario()).timer_seconds == 1798

    def test_timer_sync_and_metadata_flush(self, make_session, analytics):
        synced = []

        async def notify(event, payload):
            synced.append((event, payload))

        async def scenario():
            session = make_session(
                settings=SessionSettings(sync_every=2, metadata_flush_every=3),
                notify=notify,
            )
            await session.start('1')
            for _ in range(6):
                await session.tick()
            return session

        session = run(scenario())
        syncs = [p for e, p in synced if e == 'timer-sync']
        assert [p['seconds'] for p in syncs] == [1798, 1796, 1794]
        assert analytics.metadata[session.id].gameState == 'playing'
        assert analytics.metadata[session.id].totalTime == 6


class TestResume:
    """Snapshots restore a session across reconnects."""

    def test_round_trip(self, make_session):
        async def scenario():
            first = make_session()
            await first.start('1')
            await play(first, 'goal')
            await play(first, 'cage')
            await type_word(first, 'LOG')
            await first.shuffle()
            for _ in range(7):
                await first.tick()
            await first.suspend()

            second = make_session()
            outcome = await second.resume()
            return first, second, outcome

        first, second, outcome = run(scenario())
        assert outcome == 'resumed'
        assert second.id == first.id
        assert second.state == 'playing'
        assert second.puzzle.id == '1'
        assert second.found_words == ['goal', 'cage']
        assert second.current_word == 'LOG'
        assert second.outer_letters == first.outer_letters
        assert second.timer_seconds == 1793
        assert second.game_clock.running

    def test_hint_position_restored(self, make_session):
        entries = [hint_entry(w) for w in ['logic', 'cage', 'glee']]

        async def scenario():
            first = make_session()
            await first.start('1')
            first.attach_hints(entries)
            first.hints.skip_to_next_word()
            first.hints.request_next_hint()
            await first.tick()

            second = make_session()
            await second.resume()
            second.attach_hints(entries)
            return second

        second = run(scenario())
        assert second.hints.current_index == 1
        assert second.hints.hint_level == 2

    def test_absent(self, make_session):
        assert run(make_session().resume()) == 'absent'

    def test_corrupt_snapshot_is_discarded(self, make_session, snapshots):
        session = make_session()
        snapshots.save(session.snapshot_key, '{not json')
        assert run(session.resume()) == 'corrupt'
        assert session.state == 'not-started'
        assert snapshots.load(session.snapshot_key) is None

    def test_stale_snapshot_expires(self, make_session, snapshots, fake_clock):
        async def scenario():
            first = make_session()
            await first.start('1')
            await first.suspend()
            fake_clock.advance(25 * 3600)
            second = make_session()
            return second, await second.resume()

        second, outcome = run(scenario())
        assert outcome == 'expired'
        assert second.state == 'not-started'
        assert snapshots.load(second.snapshot_key) is None

    def test_snapshot_for_unknown_puzzle(self, make_session, snapshots):
        session = make_session()
        snapshots.save(session.snapshot_key, json.dumps({
            'sessionId': 'x', 'puzzleId': '999', 'createdAt': 1_700_000_000.0, 'savedAt': 1_700_000_000.0,
        }))
        assert run(session.resume()) == 'absent'

    def test_completed_elsewhere_shows_results(self, make_session, completions, snapshots):
        async def scenario():
            first = make_session()
            await first.start('1')
            await play(first, 'goal')
            await first.suspend()
            completions.mark_completed('alice', '1', GameResult(gameId='1', foundWords=['goal', 'logic'], wordsFound=2))

            second = make_session()
            return second, await second.resume()

        second, outcome = run(scenario())
        assert outcome == 'completed'
        assert second.state == 'ended'
        assert second.read_only
        assert second.found_words == ['goal', 'logic']
        assert second.view().readOnly
        assert snapshots.load(second.snapshot_key) is None

    def test_countdown_at_zero_finishes_on_resume(self, make_session, snapshots, analytics, fake_clock):
        session = make_session()
        snapshots.save(session.snapshot_key, json.dumps({
            'sessionId': 'old',
            'puzzleId': '1',
            'userId': 'alice',
            'foundWords': ['goal'],
            'timer': 0,
            'timerMode': 'countdown',
            'createdAt': fake_clock.now - 1800,
            'savedAt': fake_clock.now - 10,
        }))
        assert run(session.resume()) == 'resumed'
        assert session.state == 'ended'
        assert session.result.foundWords == ['goal']
        assert analytics.of_type('game_ended')[0]['reason'] == 'timeout'

    def test_resume_only_from_not_started(self, make_session):
        async def scenario():
            session = make_session()
            await session.start('1')
            return await session.resume()

        assert run(scenario()) == 'absent'


class TestView:
    def test_view_hides_answers(self, make_session):
        async def scenario():
            session = make_session()
            await session.start('2')
            return session.view().model_dump()

        view = run(scenario())
        assert view['centerLetter'] == 'A'
        assert view['wordCount'] == 16
        assert view['gameState'] == 'playing'
        assert 'answerWords' not in json.dumps(view)
        assert view['timer'] == {'mode': 'countdown', 'seconds': 1800, 'isPaused': False}

    def test_view_before_start(self, make_session):
        view = make_session().view()
        assert view.gameState == 'not-started'
        assert view.gameId is None


class TestValidationVerdictFromValidator:
    def test_validator_pangram_flag_is_honoured(self, make_session):
        class PangramValidator:
            async def validate(self, puzzle_id, word):
                return ValidationVerdict(isValid=True, isPangram=True)

        async def scenario():
            session = make_session(validator=PangramValidator())
            await session.start('1')
            return await play(session, 'goal')

        assert run(scenario()).isPangram
