"""Behavioural tests for the scheduling engine.

Most tests run a whole progression through :func:`schedule_progression` and
check properties every generated line must have, for many seeds:

* the same seed always yields the same line;
* every chord receives exactly one target on an offbeat of its window;
* approach figures never reach back beyond the previous chord;
* a single closure note follows the last target by one eighth.

The remaining tests pin down individual helpers such as formula fitting,
formula selection under a policy and closure pitch rules.
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from bebop_targeting.contour import ContourGenerator, ContourTarget  # noqa: E402  # isort:skip
from bebop_targeting.errors import (  # noqa: E402  # isort:skip
    EmptyCatalogError,
    MissingTargetDataError,
    UnknownChordError,
)
from bebop_targeting.parser import ChordWindow, parse_progression  # noqa: E402  # isort:skip
from bebop_targeting.policies import PolicyConfig, PolicyManager  # noqa: E402  # isort:skip
from bebop_targeting.rng import make_rng  # noqa: E402  # isort:skip
from bebop_targeting.rhythm import RhythmPlacement  # noqa: E402  # isort:skip
from bebop_targeting import scheduler  # noqa: E402  # isort:skip
from bebop_targeting.scheduler import (  # noqa: E402  # isort:skip
    NoteSource,
    ScheduledNote,
    SchedulerRequest,
    add_closure,
    fit_formula,
    realise_approach_midis,
    schedule_progression,
    schedule_for_window,
    schedule_request,
    select_formula,
)
from bebop_targeting.theory import TheoryStore, get_chord_profile  # noqa: E402  # isort:skip

PROGRESSIONS = [
    "| Dm9  G13 | C∆ |",
    "| Cmaj7 | Am7 D7 | Gmaj7 | Em7 A7 |",
    "| Bø E7 | Am7 | Fmaj7 Bb7 | Ebº7 |",
    "| Cm6 | Fm7 Bb7 | EbmMaj7 | Ab7#5 G7b5 |",
]
SEEDS = range(12)


def _targets(notes):
    return [note for note in notes if note.src is NoteSource.TARGET]


def _single_store(targets, formulas=None):
    return TheoryStore(
        {
            "formulas": formulas if formulas is not None else {"TYPE_1": {"enclosures": [[1, -1, 0]]}},
            "chords": {"maj7": {"targets": targets}},
        }
    )


@pytest.mark.parametrize("progression", PROGRESSIONS)
def test_same_seed_same_line(progression):
    """Scheduling is a pure function of the progression and the seed."""
    first = schedule_progression(progression, make_rng(7))
    second = schedule_progression(progression, make_rng(7))
    assert [note.to_dict() for note in first] == [note.to_dict() for note in second]


@pytest.mark.parametrize("progression", PROGRESSIONS)
@pytest.mark.parametrize("seed", SEEDS)
def test_one_offbeat_target_per_window(progression, seed):
    """Each window gets one target landing on an odd offset inside it."""
    windows = parse_progression(progression)
    notes = schedule_progression(windows, make_rng(seed))
    targets = _targets(notes)
    assert len(targets) == len(windows)
    for window, target in zip(windows, targets):
        offset = target.t - window.start_eighth
        assert offset % 2 == 1
        assert 0 < offset < window.length_eighths
        assert target.chord == window.chord_symbol
        assert target.degree in get_chord_profile(window.chord_symbol).targets


@pytest.mark.parametrize("progression", PROGRESSIONS)
@pytest.mark.parametrize("seed", SEEDS)
def test_notes_sorted_and_within_register(progression, seed):
    """Notes come out in time order, inside C4..C6 and never before time zero."""
    notes = schedule_progression(progression, make_rng(seed))
    times = [note.t for note in notes]
    assert times == sorted(times)
    assert times[0] >= 0
    assert all(60 <= note.midi <= 84 for note in notes)


@pytest.mark.parametrize("progression", PROGRESSIONS)
@pytest.mark.parametrize("seed", SEEDS)
def test_approach_never_reaches_before_previous_window(progression, seed):
    """Approach and isolated notes stay after the start of the previous chord."""
    windows = parse_progression(progression)
    notes = schedule_progression(windows, make_rng(seed))
    starts = {window.chord_symbol: [] for window in windows}
    for index, window in enumerate(windows):
        starts[window.chord_symbol].append(windows[index - 1].start_eighth if index else 0)
    for note in notes:
        if note.src is NoteSource.APPROACH:
            assert note.t >= min(starts[note.chord])


@pytest.mark.parametrize("progression", PROGRESSIONS)
@pytest.mark.parametrize("seed", SEEDS)
def test_closure_follows_last_target(progression, seed):
    """The line ends with one closure note a short step after the last target."""
    notes = schedule_progression(progression, make_rng(seed))
    closures = [note for note in notes if note.src is NoteSource.CLOSURE]
    assert len(closures) == 1
    closure = notes[-1]
    assert closure is closures[0]
    last_target = max(_targets(notes), key=lambda note: note.t)
    assert closure.t == last_target.t + 1
    assert closure.t % 2 == 0
    assert abs(closure.midi - last_target.midi) <= 11
    assert closure.chord is None and closure.degree is None


@pytest.mark.parametrize("seed", SEEDS)
def test_isolated_notes_are_unlabelled_downbeats(seed):
    """Isolated notes sit on downbeats and carry no chord or degree."""
    notes = schedule_progression("| Cmaj7 | Am7 D7 | Gmaj7 | Em7 A7 |", make_rng(seed))
    for note in notes:
        if note.src is NoteSource.ISOLATED:
            assert note.t % 2 == 0
            assert note.chord is None and note.degree is None


@pytest.mark.parametrize("seed", SEEDS)
def test_anticipation_into_previous_chord(seed):
    """The approach to C∆ always starts during G13, one eighth before the bar."""
    notes = schedule_progression("| Dm9  G13 | C∆ |", make_rng(seed))
    anticipations = [
        note for note in notes if note.src is NoteSource.APPROACH and note.chord == "Cmaj7" and note.t < 8
    ]
    assert anticipations
    assert any(note.t == 7 for note in anticipations)
    target = [note for note in _targets(notes) if note.chord == "Cmaj7"][0]
    assert target.t == 9


def test_wide_contour_reaches_register_bounds():
    """With the slider at 0 the line touches both ends of the register."""
    notes = schedule_progression("| Cmaj7 " * 8 + "|", make_rng(3), contour=ContourGenerator(0))
    midis = [note.midi for note in _targets(notes)]
    assert min(midis) <= 60
    assert max(midis) >= 84


@pytest.mark.parametrize("seed", SEEDS)
def test_narrow_contour_limits_target_spread(seed):
    """With the slider at 1 the targets span at most eight semitones."""
    notes = schedule_progression(PROGRESSIONS[1], make_rng(seed), contour=ContourGenerator(1))
    midis = [note.midi for note in _targets(notes)]
    assert max(midis) - min(midis) <= 8


def test_landing_policy_moves_targets():
    """A landing order from the policy replaces the default first offbeat."""
    policy = PolicyManager(PolicyConfig.from_dict({"rhythm": {"landingOrder": {"8": [5]}}}))
    notes = schedule_progression("| Cmaj7 | Fmaj7 |", make_rng(1), policy=policy)
    assert [note.t for note in _targets(notes)] == [5, 13]


def test_length_weight_policy_increases_long_formulas():
    """Boosting five-note formulas makes them far more frequent."""
    profile = get_chord_profile("Cmaj7")
    target = ContourTarget(degree="3", midi=76, pitch="E5")

    def count_long(policy):
        rng = make_rng(99)
        return sum(len(select_formula(profile, target, rng, policy)) == 5 for _ in range(300))

    baseline = count_long(None)
    boosted = count_long(PolicyManager(PolicyConfig.from_dict({"formula": {"lengthWeights": {"1": {"5": 50}}}})))
    assert boosted > baseline
    assert boosted > 250


def test_select_formula_registers_type():
    """The chosen formula type is remembered for the repeat penalty."""
    policy = PolicyManager()
    profile = get_chord_profile("Cmaj7")
    select_formula(profile, ContourTarget("7M", 71, "B4"), make_rng(1), policy)
    assert int(policy.last_type) == 2


def test_zero_weights_fall_back_to_uniform_choice():
    """When the policy zeroes every candidate all formulas stay reachable."""
    store = _single_store(
        {"3": {"type": 1}},
        formulas={"TYPE_1": {"short": [[1, 0]], "long": [[2, -1, 0]]}, "TYPE_2": {}},
    )
    policy = PolicyManager(PolicyConfig.from_dict({"formula": {"lengthWeights": {"1": {"2": 0, "3": 0}}}}))
    profile = get_chord_profile("Cmaj7")
    target = ContourTarget(degree="3", midi=64, pitch="E4")
    rng = make_rng(5)
    picked = {tuple(select_formula(profile, target, rng, policy, store)) for _ in range(100)}
    assert picked == {(1, 0), (2, -1, 0)}


def _fixed_fit(formula, placement):
    def fake_fit(window, raw_formula, previous_window, landing_preference=None):
        return list(formula), placement

    return fake_fit


def test_negative_isolated_note_dropped_without_previous_window(monkeypatch):
    """An isolated note before time zero is skipped on the first chord."""
    placement = RhythmPlacement(landing=1, approach_start=0, total_start=-1, isolated=-1)
    monkeypatch.setattr(scheduler, "fit_formula", _fixed_fit([-1, 0], placement))
    notes = schedule_for_window(
        [], ChordWindow("Cmaj7", 0, 8), get_chord_profile("Cmaj7"), ContourTarget("3", 64, "E4"), make_rng(1)
    )
    assert [(note.t, note.src) for note in notes] == [(0, NoteSource.APPROACH), (1, NoteSource.TARGET)]


def test_isolated_note_kept_with_previous_window(monkeypatch):
    """With a previous chord the isolated note is emitted unlabelled."""
    placement = RhythmPlacement(landing=9, approach_start=8, total_start=7, isolated=7)
    monkeypatch.setattr(scheduler, "fit_formula", _fixed_fit([-1, 0], placement))
    notes = schedule_for_window(
        [],
        ChordWindow("G7", 8, 8),
        get_chord_profile("G7"),
        ContourTarget("3", 71, "B4"),
        make_rng(1),
        previous_window=ChordWindow("Dm7", 0, 8),
    )
    assert notes[0].t == 7 and notes[0].src is NoteSource.ISOLATED
    assert notes[0].chord is None


def test_approach_notes_before_both_windows_are_dropped(monkeypatch):
    """Approach notes earlier than the current and previous window starts are skipped."""
    placement = RhythmPlacement(landing=9, approach_start=2, total_start=2, isolated=None)
    monkeypatch.setattr(scheduler, "fit_formula", _fixed_fit([3, 2, 1, -1, 0], placement))
    notes = schedule_for_window(
        [],
        ChordWindow("G7", 8, 8),
        get_chord_profile("G7"),
        ContourTarget("3", 71, "B4"),
        make_rng(1),
        previous_window=ChordWindow("Dm7", 4, 4),
    )
    assert [(note.t, note.src) for note in notes] == [
        (4, NoteSource.APPROACH),
        (5, NoteSource.APPROACH),
        (9, NoteSource.TARGET),
    ]


def test_fit_formula_shrinks_from_the_front():
    """Without a previous window the figure is shortened until it starts at zero."""
    formula, placement = fit_formula(ChordWindow("Dm9", 0, 4), [2, -1, 0], None)
    assert formula == [-1, 0]
    assert (placement.landing, placement.approach_start, placement.isolated) == (1, 0, None)


def test_fit_formula_keeps_anticipation():
    """A figure fitting after the previous window start is left intact."""
    formula, placement = fit_formula(ChordWindow("G13", 4, 4), [4, 2, 1, -1, 0], ChordWindow("Dm9", 0, 4))
    assert len(formula) == 5
    assert placement.approach_start == 1
    assert placement.isolated == 0


@pytest.mark.parametrize("length", range(1, 13))
@pytest.mark.parametrize(
    "window, previous",
    [
        (ChordWindow("C", 0, 8), None),
        (ChordWindow("C", 8, 4), ChordWindow("D", 4, 4)),
        (ChordWindow("C", 8, 8), ChordWindow("D", 0, 8)),
    ],
)
def test_fit_formula_always_terminates(window, previous, length):
    """Fitting returns a suffix that respects the bound or is the bare target."""
    formula = [1] * (length - 1) + [0]
    fitted, placement = fit_formula(window, formula, previous)
    assert fitted == formula[len(formula) - len(fitted):]
    bound = previous.start_eighth if previous else 0
    assert len(fitted) == 1 or placement.earliest >= bound


def test_realise_approach_midis_wraps():
    """Approach pitches above the register move down an octave."""
    assert realise_approach_midis(84, [2, -1, 0]) == [74, 83]


@pytest.mark.parametrize("target, expected", [(72, 70), (60, 62), (61, 63), (84, 82)])
def test_add_closure_pitch(target, expected):
    """The closure is a whole step below, or above when below leaves the register."""
    notes = [ScheduledNote(t=3, midi=target, pitch="", src=NoteSource.TARGET, chord="C", degree="1")]
    closure = add_closure(notes)
    assert closure.midi == expected
    assert closure.t == 4
    assert notes[-1] is closure


def test_add_closure_without_targets():
    """No closure is added when nothing was targeted."""
    notes = []
    assert add_closure(notes) is None
    assert notes == []


def test_empty_progression():
    """An empty progression schedules nothing, not even a closure."""
    assert schedule_progression("", make_rng(1)) == []


def test_unknown_chord_aborts():
    """An unknown chord aborts the run."""
    with pytest.raises(UnknownChordError):
        schedule_progression("| Cmaj7 | Cxyz |", make_rng(1))


def test_empty_catalog_raises():
    """A formula type without candidates cannot be scheduled."""
    store = _single_store({"3": {"type": 1}}, formulas={"TYPE_1": {}, "TYPE_2": {}})
    with pytest.raises(EmptyCatalogError):
        schedule_progression("| Cmaj7 |", make_rng(1), store=store)


def test_unsupported_formula_type_raises():
    """Targets naming an unknown formula type are reported."""
    store = _single_store({"3": {"type": 3}})
    with pytest.raises(MissingTargetDataError):
        schedule_progression("| Cmaj7 |", make_rng(1), store=store)


def test_scheduled_note_to_dict_omits_missing_labels():
    """Notes without chord or degree serialise without those keys."""
    note = ScheduledNote(t=0, midi=60, pitch="C4", src=NoteSource.ISOLATED)
    assert note.to_dict() == {"t": 0, "dur": 1, "midi": 60, "pitch": "C4", "src": "isolated"}


def test_request_from_dict_and_schedule():
    """Requests decoded from JSON schedule with their own contour slider."""
    request = SchedulerRequest.from_dict({"progression": "| Cmaj7 |", "contour_slider": 1, "seed": 4})
    assert request.key == "C"
    assert request.to_dict() == {"progression": "| Cmaj7 |", "key": "C", "contour_slider": 1, "seed": 4}
    notes = schedule_request(request, make_rng(4))
    assert all(68 <= note.midi <= 76 for note in _targets(notes))


def test_request_from_dict_requires_progression():
    """A missing progression is rejected."""
    with pytest.raises(ValueError):
        SchedulerRequest.from_dict({"seed": 1})
