import pytest
from sqlalchemy.exc import IntegrityError

from base_model import NotFound, PreconditionError, QueryError, ValidationFailure
from example_app.models import Problem, User

pytestmark = pytest.mark.usefixtures("database")


def names(records):
    return [record.name for record in records]


class TestAll:
    def test_returns_empty_list_when_there_are_none(self):
        assert User.all() == []

    def test_returns_all_records(self, create_user):
        create_user(name="a")
        create_user(name="b")
        assert sorted(names(User.all())) == ["a", "b"]

    def test_allows_specifying_sort_order(self, create_user):
        for name in ("b", "a", "c"):
            create_user(name=name)
        assert names(User.all(order_by="name")) == ["a", "b", "c"]
        assert names(User.all(order_by=[("desc", "name")])) == ["c", "b", "a"]
        assert names(User.all(order_by=("desc", "name"))) == ["c", "b", "a"]

    def test_supports_preload(self, create_user, create_problem):
        bob = create_user(name="bob")
        create_problem(bob, description="first")
        users = User.all(preload="problems")
        assert [p.description for p in users[0].problems] == ["first"]

    def test_drops_limit(self, create_user):
        for name in ("a", "b"):
            create_user(name=name)
        assert len(User.all(limit=1)) == 2


class TestCreate:
    def test_returns_ok_result_with_the_record(self):
        result = User.create(name="Chris", age=-1)
        assert result.ok
        assert result.value.name == "Chris"
        assert result.value.age == -1
        assert result.value.id is not None

    def test_accepts_a_mapping(self):
        result = User.create({"name": "test_map_create", "age": 1999})
        assert result.ok
        assert (result.value.name, result.value.age) == ("test_map_create", 1999)

    def test_accepts_pairs(self):
        result = User.create([("name", "pairs"), ("age", 3)])
        assert result.ok
        assert result.value.age == 3

    def test_allows_setting_an_association(self):
        bob = User.create(name="bob").value
        problem = Problem.create(user=bob, description="a problem", severity=2).value
        assert problem.user_id == bob.id

        found = User.find(bob.id, preload="problems")
        assert found.name == "bob"
        assert [p.id for p in found.problems] == [problem.id]

    def test_association_may_be_a_mapping(self, create_user):
        bob = create_user(name="bob")
        result = Problem.create(user={"id": bob.id}, severity=1)
        assert result.ok
        assert result.value.user_id == bob.id

    def test_returns_failure_with_field_errors(self):
        result = User.create(age=3)
        assert not result.ok
        assert isinstance(result.error, ValidationFailure)
        assert "name" in result.error
        assert User.count() == 0

    def test_rejects_badly_typed_values(self):
        result = User.create(name="x", age="not a number")
        assert not result.ok
        assert "age" in result.error.errors

    def test_ignores_primary_key(self):
        result = User.create(id=4242, name="pk")
        assert result.ok
        assert result.value.id != 4242

    def test_ignores_unknown_fields(self):
        result = User.create(name="x", favourite_colour="blue")
        assert result.ok

    def test_allows_overriding_validation(self, create_user):
        bob = create_user(name="bob")
        result = Problem.create(user=bob, severity=9)
        assert not result.ok
        assert "severity" in result.error.errors
        assert Problem.count() == 0


class TestFind:
    def test_returns_none_if_the_id_is_not_in_the_table(self):
        assert User.find(1) is None

    def test_returns_the_record_if_it_exists(self, create_user):
        user = create_user(name="test_find")
        assert User.find(user.id).name == "test_find"

    def test_round_trip_preserves_supplied_fields(self):
        created = User.create(name="round", age=41).value
        found = User.find(created.id)
        assert (found.name, found.age) == ("round", 41)

    def test_ignores_order_and_limit(self, create_user):
        user = create_user(name="a")
        assert User.find(user.id, order_by="name", limit=0).id == user.id


class TestWhere:
    @pytest.fixture(autouse=True)
    def users(self, create_user):
        create_user(name="a", age=1)
        create_user(name="b", age=2)
        create_user(name="c", age=2)

    def test_returns_matching_records(self):
        records = User.where({"age": 1})
        assert [(r.name, r.age) for r in records] == [("a", 1)]

    def test_allows_specifying_order(self):
        assert names(User.where({"age": 2}, order_by="name")) == ["b", "c"]
        assert names(User.where({"age": 2}, order_by=[("desc", "name")])) == ["c", "b"]

    def test_allows_specifying_limit(self):
        records = User.where({"age": 2}, limit=1)
        assert len(records) == 1
        assert records[0].age == 2

    def test_ignores_other_opts(self):
        records = User.where({"age": 2}, asdfasdf=1, limit=1)
        assert len(records) == 1

    def test_none_matches_unset_fields(self, create_user):
        create_user(name="ageless")
        assert names(User.where({"age": None})) == ["ageless"]

    def test_filters_by_association(self, create_problem):
        owner = User.first({"name": "b"})
        create_problem(owner, description="mine")
        create_problem(User.first({"name": "a"}), description="theirs")
        assert [p.description for p in Problem.where({"user": owner})] == ["mine"]

    def test_unknown_field_raises(self):
        with pytest.raises(QueryError):
            User.where({"shoe_size": 9})

    def test_scalar_for_an_association_raises(self):
        with pytest.raises(QueryError, match="user_id"):
            Problem.where({"user": 5})

    def test_negative_limit_raises(self):
        with pytest.raises(QueryError):
            User.where({"age": 2}, limit=-1)


class TestCount:
    def test_returns_the_count_of_all_records_with_no_query(self, create_user):
        assert User.count() == 0
        create_user(name="a")
        assert User.count() == 1

    def test_returns_the_count_of_matching_records(self, create_user):
        create_user(name="a")
        create_user(name="a")
        create_user(name="b")
        assert User.count({"name": "a"}) == 2
        assert User.count([("name", "b")]) == 1

    def test_matches_length_of_all(self, create_user):
        for name in ("a", "b", "c"):
            create_user(name=name)
        assert User.count() == len(User.all())


class TestFirst:
    def test_returns_the_row_with_the_smallest_pk(self, create_user):
        first = create_user(name="x")
        create_user(name="x")
        assert User.first({"name": "x"}).id == first.id

    def test_returns_none_when_no_matches(self):
        assert User.first({"name": "nobody"}) is None

    def test_honours_order_by_and_overrides_limit(self, create_user):
        create_user(name="a", age=5)
        create_user(name="b", age=5)
        assert User.first({"age": 5}, order_by=[("desc", "name")], limit=10).name == "b"

    def test_agrees_with_where_limit_one(self, create_user):
        create_user(name="a", age=5)
        create_user(name="b", age=5)
        limited = User.where({"age": 5}, order_by="id", limit=1)
        assert len(limited) == 1
        assert User.first({"age": 5}).id == limited[0].id


class TestFirstOrCreate:
    def test_returns_the_first_matching_item_if_it_exists(self, create_user):
        existing = create_user(name="dup", age=3)
        create_user(name="dup", age=3)
        assert User.first_or_create({"name": "dup", "age": 3}).id == existing.id
        assert User.count() == 2

    def test_creates_a_new_object_if_one_does_not_exist(self):
        created = User.first_or_create({"name": "new", "age": 7})
        assert created.id is not None
        assert User.count({"name": "new"}) == 1

    def test_is_idempotent(self):
        once = User.first_or_create({"name": "same"})
        twice = User.first_or_create({"name": "same"})
        assert once.id == twice.id
        assert User.count() == 1

    def test_resolves_associations(self, create_user):
        bob = create_user(name="bob")
        problem = Problem.first_or_create({"user": bob, "description": "shared", "severity": 2})
        again = Problem.first_or_create({"user": bob, "description": "shared", "severity": 2})
        assert problem.user_id == bob.id
        assert again.id == problem.id

    def test_invalid_create_payload_raises(self):
        with pytest.raises(PreconditionError) as excinfo:
            User.first_or_create({"age": 12})
        assert "name" in excinfo.value.failure.errors


class TestUpdate:
    def test_updates_the_model(self, create_user):
        user = create_user(name="a")
        User.update(user, name="b")
        assert User.find(user.id).name == "b"

    def test_returns_ok_with_the_updated_model(self, create_user):
        user = create_user(name="a")
        result = User.update(user, {"name": "b", "age": 12})
        assert result.ok
        assert (result.value.name, result.value.age) == ("b", 12)
        found = User.find(user.id)
        assert (found.name, found.age) == ("b", 12)

    def test_cannot_change_the_primary_key(self, create_user):
        user = create_user(name="a")
        original_id = user.id
        assert User.update(user, id=original_id + 100, name="moved").ok
        assert User.find(original_id).name == "moved"
        assert User.find(original_id + 100) is None

    def test_returns_failure_and_leaves_the_record(self, create_user):
        user = create_user(name="a", age=3)
        result = User.update(user, age="old")
        assert not result.ok
        assert "age" in result.error.errors
        assert User.find(user.id).age == 3

    def test_allows_overriding_validation(self, create_user, create_problem):
        problem = create_problem(create_user(name="bob"), severity=2)
        result = Problem.update(problem, severity=0)
        assert not result.ok
        assert "severity" in result.error.errors
        assert Problem.find(problem.id).severity == 2

    def test_resolves_associations(self, create_user, create_problem):
        problem = create_problem(create_user(name="old owner"))
        new_owner = create_user(name="new owner")
        assert Problem.update(problem, user=new_owner).ok
        assert Problem.find(problem.id).user_id == new_owner.id


class TestUpdateWhere:
    @pytest.fixture(autouse=True)
    def users(self, create_user):
        create_user(name="a")
        create_user(name="a")
        create_user(name="b")

    def test_updates_all_the_matching_records(self):
        User.update_where({"name": "a"}, {"name": "c"})
        assert User.count({"name": "c"}) == 2
        assert User.count({"name": "a"}) == 0

    def test_returns_ok_with_the_count(self):
        result = User.update_where({"name": "a"}, {"name": "c"})
        assert result.ok
        assert result.value == 2

    def test_zero_matches_is_success(self):
        assert User.update_where({"name": "zzz"}, {"age": 1}).value == 0

    def test_storage_error_rolls_back_and_propagates(self):
        with pytest.raises(IntegrityError):
            User.update_where({"name": "a"}, {"name": None})

        assert User.count({"name": "a"}) == 2
        assert User.create(name="after").ok
        assert User.count() == 4

    def test_skips_validation(self, create_problem):
        owner = User.first({"name": "b"})
        create_problem(owner, severity=1)
        create_problem(owner, severity=2)
        result = Problem.update_where({"user": owner}, {"severity": 99})
        assert result.value == 2
        assert Problem.count({"severity": 99}) == 2


class TestDelete:
    def test_deletes_a_record(self, create_user):
        user = create_user(name="a", age=1)
        assert User.count() == 1
        User.delete(user.id)
        assert User.count() == 0

    def test_returns_ok_if_the_record_was_deleted(self, create_user):
        user = create_user(name="a")
        result = User.delete(user.id)
        assert result.ok
        assert User.find(user.id) is None

    def test_accepts_a_record(self, create_user):
        user = create_user(name="a")
        create_user(name="b")
        assert User.delete(user).ok
        assert names(User.all()) == ["b"]

    def test_returns_not_found_if_absent(self, create_user):
        create_user(name="a")
        result = User.delete(987654)
        assert not result.ok
        assert result.error == NotFound("User", 987654)
        assert User.count() == 1


class TestDeleteWhere:
    @pytest.fixture(autouse=True)
    def users(self, create_user):
        create_user(name="a")
        create_user(name="a")
        create_user(name="b")

    def test_deletes_all_records_that_match(self):
        User.delete_where({"name": "a"})
        assert User.count() == 1

    def test_returns_ok_with_the_count(self):
        assert User.delete_where({"name": "a"}).value == 2
        assert User.delete_where({"name": "b"}).value == 1
        assert User.delete_where({"name": "c"}).value == 0


class TestDeleteAll:
    @pytest.fixture(autouse=True)
    def users(self, create_user):
        create_user(name="a")
        create_user(name="a")
        create_user(name="b")

    def test_deletes_all_records_in_the_table(self):
        User.delete_all()
        assert User.count() == 0

    def test_returns_ok_with_the_count(self):
        result = User.delete_all()
        assert result.ok
        assert result.value == 3


class TestParentChildScenario:
    def test_children_counted_and_deleted_by_association(self, create_user, create_problem):
        parent = create_user(name="parent")
        for index in range(3):
            create_problem(parent, description=f"child {index}")

        assert Problem.count({"user": parent}) == 3
        assert Problem.delete_where({"user": parent}).value == 3
        assert Problem.count({"user": parent}) == 0
        assert User.find(parent.id) is not None
