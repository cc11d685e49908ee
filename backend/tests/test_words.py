from concurrent.futures import ThreadPoolExecutor

import pytest

from conftest import FakeWriter, run
from storyreader.errors import ErrorKind, GenerationError, ValidationError
from storyreader.models import Word, WordDefinition
from storyreader.words import (
    DefinitionEntry,
    DefinitionMatcher,
    WordKnowledgeStore,
    add_contextual_definition,
    normalize_definition,
)


@pytest.fixture
def store(database) -> WordKnowledgeStore:
    return WordKnowledgeStore(database)


def entry(n: int) -> DefinitionEntry:
    return DefinitionEntry(sentence=f"sentence {n}", translation=f"tr {n}", definition=f"def {n}")


@pytest.mark.parametrize("level", [0, 1, 2, 3, 4, 5])
def test_upsert_level_then_list(store, level):
    store.add_definition("Chat", entry(1))
    record = store.upsert_level("chat", level)
    assert record.level == level
    listed = {r.word: r for r in store.list()}
    assert listed["chat"].level == level
    assert listed["chat"].definitions == [entry(1)]


@pytest.mark.parametrize("level", [-1, 6, 2.5, "3", True, None])
def test_upsert_level_rejects_invalid_levels(store, level):
    with pytest.raises(ValidationError):
        store.upsert_level("chat", level)
    assert store.list() == []


def test_upsert_level_rejects_empty_word(store):
    with pytest.raises(ValidationError):
        store.upsert_level("   ", 2)


def test_upsert_level_is_idempotent(store):
    first = store.upsert_level("chien", 3)
    second = store.upsert_level("chien", 3)
    assert (second.word, second.level, second.definitions) == (first.word, first.level, first.definitions)
    assert second.created_at == first.created_at
    assert len(store.list()) == 1


def test_upsert_level_normalizes_word(store):
    store.upsert_level("  Maison ", 4)
    assert store.get("MAISON").level == 4


def test_add_definition_creates_word_at_level_zero(store):
    record = store.add_definition("pomme", entry(1))
    assert record.word == "pomme"
    assert record.level == 0
    assert record.definitions == [entry(1)]


def test_add_definition_is_append_only_in_call_order(store):
    for n in range(4):
        store.add_definition("pomme", entry(n))
    assert store.get("pomme").definitions == [entry(n) for n in range(4)]


def test_add_definition_keeps_duplicates(store):
    store.add_definition("pomme", entry(1))
    store.add_definition("pomme", entry(1))
    assert store.get("pomme").definitions == [entry(1), entry(1)]


def test_add_definition_does_not_reset_level(store):
    store.upsert_level("pomme", 3)
    assert store.add_definition("pomme", entry(1)).level == 3


def test_remove_definition_with_full_matcher(store):
    for n in range(3):
        store.add_definition("lune", entry(n))
    record = store.remove_definition(
        "lune", DefinitionMatcher(sentence="sentence 1", translation="tr 1", definition="def 1")
    )
    assert record.definitions == [entry(0), entry(2)]


def test_remove_definition_removes_every_match(store):
    store.add_definition("lune", entry(1))
    store.add_definition("lune", entry(2))
    store.add_definition("lune", entry(1))
    record = store.remove_definition("lune", DefinitionMatcher(sentence="sentence 1"))
    assert record.definitions == [entry(2)]


def test_remove_definition_partial_matcher_respects_given_fields(store):
    store.add_definition("lune", DefinitionEntry("s", "moon", "a"))
    store.add_definition("lune", DefinitionEntry("s", "month", "b"))
    record = store.remove_definition("lune", DefinitionMatcher(sentence="s", translation="moon"))
    assert record.definitions == [DefinitionEntry("s", "month", "b")]


def test_remove_definition_without_match_is_noop(store):
    store.upsert_level("lune", 2)
    store.add_definition("lune", entry(1))
    before = store.get("lune")
    after = store.remove_definition("lune", DefinitionMatcher(sentence="nope"))
    assert after.definitions == before.definitions
    assert after.level == 2


def test_remove_definition_unknown_word(store):
    assert store.remove_definition("inconnu", DefinitionMatcher(sentence="x")) is None
    assert store.list() == []


def test_auto_master_promotes_only_never_seen(store):
    store.upsert_level("x", 0)
    store.upsert_level("y", 2)
    records = {r.word: r.level for r in store.auto_master(["x", "y"])}
    assert records == {"x": 5, "y": 2}
    assert store.get("x").level == 5
    assert store.get("y").level == 2


def test_auto_master_creates_unseen_words_as_mastered(store):
    records = store.auto_master(["Soleil", "soleil", " "])
    assert [(r.word, r.level) for r in records] == [("soleil", 5)]


def test_auto_master_keeps_definitions(store):
    store.add_definition("x", entry(1))
    store.auto_master(["x"])
    record = store.get("x")
    assert record.level == 5
    assert record.definitions == [entry(1)]


def test_auto_master_empty_input(store):
    assert store.auto_master([]) == []


def test_legacy_string_definitions_are_upgraded_on_read(store, database):
    with database.session() as db:
        db.add(Word(word="vieux", level=1))
        db.flush()
        db.add(WordDefinition(word="vieux", payload="old"))
        db.add(WordDefinition(word="vieux", payload={"definition": "aged", "translation": "old"}))
    record = store.get("vieux")
    assert record.definitions == [
        DefinitionEntry(sentence="", translation="", definition="old"),
        DefinitionEntry(sentence="", translation="old", definition="aged"),
    ]


def test_legacy_definition_can_be_removed_by_definition_text(store, database):
    with database.session() as db:
        db.add(Word(word="vieux", level=1))
        db.flush()
        db.add(WordDefinition(word="vieux", payload="old"))
    record = store.remove_definition("vieux", DefinitionMatcher(sentence="", definition="old"))
    assert record.definitions == []


def test_normalize_definition_variants():
    assert normalize_definition(None) == DefinitionEntry()
    assert normalize_definition({"sentence": "s"}) == DefinitionEntry(sentence="s")


def test_add_contextual_definition_uses_located_sentence(store):
    writer = FakeWriter()
    paragraph = "Il fait beau. Le Chat dort au soleil. Fin."
    record = run(add_contextual_definition(store, writer, "CHAT", paragraph, delay_ms=0))
    assert writer.define_calls == [("chat", "Le Chat dort au soleil.")]
    assert record.word == "chat"
    assert record.level == 0
    assert record.definitions == [
        DefinitionEntry(sentence="Le Chat dort au soleil.", translation="tr-chat", definition="meaning of chat")
    ]


def test_add_contextual_definition_failure_stores_nothing(store):
    class BrokenDefiner:
        calls = 0

        async def define(self, word, sentence):
            BrokenDefiner.calls += 1
            raise RuntimeError("quota exceeded")

    with pytest.raises(GenerationError) as info:
        run(add_contextual_definition(store, BrokenDefiner(), "chat", "Le chat.", delay_ms=0))
    assert info.value.kind is ErrorKind.BILLING_ISSUE
    assert BrokenDefiner.calls == 1
    assert store.get("chat") is None


def test_concurrent_level_changes_and_definition_appends_are_both_kept(store):
    store.upsert_level("mot", 1)

    def set_level(k):
        store.upsert_level("mot", 1 + k % 5)

    def append(k):
        store.add_definition("mot", entry(k))

    with ThreadPoolExecutor(max_workers=8) as pool:
        futures = [pool.submit(set_level, k) for k in range(20)]
        futures += [pool.submit(append, k) for k in range(20)]
        for f in futures:
            f.result()

    record = store.get("mot")
    assert record.level != 0
    assert sorted(d.sentence for d in record.definitions) == sorted(f"sentence {k}" for k in range(20))
    assert len(store.list()) == 1
