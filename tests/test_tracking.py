"""Unit tests for element tracking."""
from hypothesis import given
from hypothesis import strategies as st

from blompie.game import ElementTracker, TrackedElements


class TestNPCDetection:
    """Tests for NPC keyword detection."""

    def test_capitalized_word_after_keyword(self):
        """Test that a capitalized word after a keyword is an NPC."""
        found = ElementTracker().scan("You greet Mira at the gate.")

        assert found.npcs == ["Mira"]

    def test_punctuation_stripped(self):
        """Test that keyword and name punctuation is ignored."""
        found = ElementTracker().scan("An old wizard, Alaric, nods.")

        assert found.npcs == ["Alaric"]

    def test_lowercase_word_ignored(self):
        """Test that an uncapitalized word is not a name."""
        found = ElementTracker().scan("A merchant waves at you.")

        assert found.npcs == []

    def test_keyword_as_last_word(self):
        """Test that a keyword at the very end does not fail."""
        found = ElementTracker().scan("You see a gnome")

        assert found.npcs == []


class TestInventoryAndLocations:
    """Tests for inventory and location phrases."""

    def test_inventory_phrase(self):
        """Test that up to three words follow an inventory phrase."""
        found = ElementTracker().scan("You pick up the rusty iron sword and leave")

        assert found.inventory == ["the rusty iron"]

    def test_inventory_stops_at_sentence_end(self):
        """Test that the tail stays within its sentence."""
        found = ElementTracker().scan("You grab a torch. It flickers.")

        assert found.inventory == ["a torch"]

    def test_location_phrase(self):
        """Test that up to four words follow a location phrase."""
        found = ElementTracker().scan("You arrive at the Crystal Caverns of Doom today")

        assert found.locations == ["the Crystal Caverns of"]

    def test_location_case_insensitive(self):
        """Test that phrases match regardless of case."""
        found = ElementTracker().scan("Standing in the Great Hall. You wait.")

        assert found.locations == ["the Great Hall"]

    def test_sample_response(self, sample_response):
        """Test tracking over a realistic reply."""
        found = ElementTracker().scan(sample_response)

        assert found.npcs == ["Gideon"]
        assert found.inventory == ["the silver key"]
        assert found.locations == ["the Misty Forest"]


class TestAccumulation:
    """Tests for duplicate handling across turns."""

    def test_duplicates_skipped_case_insensitively(self):
        """Test that repeats are not recorded twice."""
        tracker = ElementTracker()
        tracker.scan("You greet Mira.")

        found = tracker.scan("You greet MIRA again. You greet Mira.")

        assert found.npcs == []
        assert tracker.known.npcs == ["Mira"]

    def test_returns_only_new_entries(self):
        """Test that scan reports just what it discovered."""
        tracker = ElementTracker()
        tracker.scan("You enter the library.")

        found = tracker.scan("You enter the library. You greet Tom.")

        assert found.locations == []
        assert found.npcs == ["Tom"]
        assert tracker.known.locations == ["the library"]

    def test_reset(self):
        """Test that reset forgets everything."""
        tracker = ElementTracker(TrackedElements(npcs=["Mira"]))

        tracker.reset()

        assert tracker.known.is_empty()

    def test_initial_state_is_copied(self):
        """Test that the tracker does not mutate the caller's elements."""
        initial = TrackedElements(npcs=["Mira"])
        tracker = ElementTracker(initial)

        tracker.scan("You greet Tom.")

        assert initial.npcs == ["Mira"]
        assert tracker.known.npcs == ["Mira", "Tom"]

    @given(st.text())
    def test_never_raises_and_no_duplicates(self, text: str):
        """Property test: scanning arbitrary text is safe and keeps entries unique."""
        tracker = ElementTracker()
        tracker.scan(text)
        tracker.scan(text)

        for entries in (tracker.known.npcs, tracker.known.inventory, tracker.known.locations):
            folded = [entry.casefold() for entry in entries]
            assert len(folded) == len(set(folded))
