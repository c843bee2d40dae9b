# tests/unit/domain/models/test_task_transitions.py
import pytest

from application.services.task_factory import TaskFactory
from domain.errors import TaskDefinitionError, TaskTimeoutError
from domain.models.task import Task
from domain.models.task_definition import define_task
from domain.models.task_state import StateNames

def noop(task):
    return None

@pytest.fixture
def factory():
    return TaskFactory()

@pytest.fixture
def definition():
    """Task with two sub-tasks, the first with a sub-sub-task"""
    definition = define_task("Task A", noop)
    sub_a1, _ = definition.define_sub_tasks(["Sub A1", "Sub A2"])
    sub_a1.define_sub_task("Sub A1a")
    return definition

@pytest.fixture
def task(factory, definition):
    return factory.create_task(definition)

def all_states(task):
    names = []
    task.for_each(lambda t: names.append(t.state.name))
    return names

class TestTaskStructure:
    """Test tasks mirror their definitions"""

    def test_sub_tasks_mirror_definition(self, task):
        """Test sub-tasks are created one per sub-task definition"""
        assert [t.name for t in task.sub_tasks] == ["Sub A1", "Sub A2"]
        sub_a1 = task.get_sub_task("Sub A1")
        assert [t.name for t in sub_a1.sub_tasks] == ["Sub A1a"]
        assert sub_a1.parent is task
        assert sub_a1.get_sub_task("Sub A1a").root() is task

    def test_new_task_is_unstarted(self, task):
        """Test initial bookkeeping"""
        assert task.unstarted
        assert task.attempts == 0
        assert task.total_attempts == 0
        assert task.began is None and task.ended is None and task.took is None
        assert all_states(task) == [StateNames.UNSTARTED] * 4

    def test_structure_predicates(self, task):
        """Test root/sub/super predicates"""
        sub_a2 = task.get_sub_task("Sub A2")
        assert task.is_root_task() and task.is_super_task() and not task.is_sub_task()
        assert sub_a2.is_sub_task() and not sub_a2.is_super_task()
        assert not task.is_master_task()

    def test_only_executable_tasks_get_execute(self, task):
        """Test internal sub-tasks have no execute adapter"""
        assert callable(task.execute)
        assert task.get_sub_task("Sub A1").execute is None

    def test_cannot_create_top_level_task_from_sub_task_definition(self, definition):
        """Test sub-task definitions need a parent task"""
        with pytest.raises(TaskDefinitionError):
            Task(definition.get_sub_task_def("Sub A1"))

    def test_cannot_create_task_without_definition(self):
        """Test a task needs a definition"""
        with pytest.raises(TaskDefinitionError):
            Task("Task A")

class TestStartAndReset:
    """Test starting and resetting tasks"""

    def test_start_counts_an_attempt(self, task):
        """Test start records began and increments attempts"""
        assert task.start("2024-01-01T00:00:00+00:00") == 1
        assert task.started
        assert task.attempts == 1
        assert task.total_attempts == 1
        assert task.began.isoformat() == "2024-01-01T00:00:00+00:00"
        assert task.get_sub_task("Sub A1").unstarted

    def test_start_only_while_unstarted(self, task):
        """Test start is a no-op on a task that is not unstarted"""
        task.start()
        assert task.start() == 0
        assert task.attempts == 1

    def test_recursive_start(self, task):
        """Test starting the whole tree"""
        assert task.start(recursive=True) == 4
        assert all_states(task) == [StateNames.STARTED] * 4

    def test_reset_is_unconditional(self, task):
        """Test reset returns even a rejected task to unstarted, keeping attempts"""
        task.start()
        task.reject("No longer needed")
        assert task.reset() == 1
        assert task.unstarted
        assert task.attempts == 1

    def test_reset_recursive(self, task):
        """Test recursive reset"""
        task.complete(recursive=True)
        assert task.reset(recursive=True) == 4
        assert all_states(task) == [StateNames.UNSTARTED] * 4

class TestComplete:
    """Test completing tasks"""

    def test_complete(self, task):
        """Test completion with a result"""
        task.start()
        assert task.complete({"done": True}) == 1
        assert task.completed
        assert task.result == {"done": True}

    def test_succeed(self, task):
        """Test the Succeeded sub-variant"""
        task.succeed()
        assert task.completed
        assert task.state.name == StateNames.SUCCEEDED

    def test_complete_as(self, task):
        """Test completing with a custom state name"""
        task.complete_as(StateNames.SKIPPED)
        assert task.completed
        assert task.state.name == "Skipped"

    def test_complete_blocked_when_timed_out(self, task):
        """Test a timed out task needs an explicit override"""
        task.start()
        task.timeout(TaskTimeoutError("Ran out of time"))

        assert task.complete() == 0
        assert task.timed_out
        assert task.complete(override_timed_out=True) == 1
        assert task.completed

    def test_complete_blocked_when_rejected(self, task):
        """Test rejected is terminal"""
        task.reject("r")
        assert task.complete(override_timed_out=True) == 0
        assert task.rejected

    def test_recursive_complete_skips_rejected_sub_tasks(self, task):
        """Test rejected sub-tasks keep their state"""
        task.get_sub_task("Sub A2").discard("Not needed")
        assert task.complete(recursive=True) == 3
        assert task.get_sub_task("Sub A2").is_discarded()
        assert task.get_sub_task("Sub A1").get_sub_task("Sub A1a").completed

    def test_complete_twice_counts_once(self, task):
        """Test no state change is not counted"""
        assert task.complete() == 1
        assert task.complete() == 0

class TestTimeout:
    """Test timing out tasks"""

    def test_timeout_started_task(self, task):
        """Test a started task times out with its error"""
        task.start()
        error = TaskTimeoutError("Lambda timeout")
        assert task.timeout(error) == 1
        assert task.timed_out
        assert task.error is error
        assert task.state.error == "TaskTimeoutError: Lambda timeout"

    def test_timeout_blocked_when_unstarted(self, task):
        """Test an unstarted task only times out when overridden"""
        assert task.timeout() == 0
        assert task.unstarted
        assert task.timeout(override_unstarted=True) == 1
        assert task.timed_out

    def test_timeout_blocked_when_completed(self, task):
        """Test a completed task only times out when overridden"""
        task.complete()
        assert task.timeout() == 0
        assert task.timeout(override_completed=True) == 1
        assert task.timed_out

    def test_timeout_blocked_when_rejected(self, task):
        """Test rejected is terminal"""
        task.reject("r")
        assert task.timeout(override_completed=True, override_unstarted=True) == 0

    def test_reverse_attempt(self, task):
        """Test the timed out attempt is not counted"""
        task.start()
        task.timeout(reverse_attempt=True)
        assert task.attempts == 0
        assert task.total_attempts == 1

    def test_reverse_attempt_only_when_previously_started(self, task):
        """Test no attempt is reversed for a task that was not started"""
        task.start()
        task.fail(ValueError("x"))
        task.timeout(reverse_attempt=True)
        assert task.timed_out
        assert task.attempts == 1

    def test_timeout_as(self, task):
        """Test a custom timed out state name"""
        task.start()
        task.timeout_as("DeadlineExceeded")
        assert task.timed_out
        assert task.state.name == "DeadlineExceeded"

    def test_timeout_without_error_records_timeout_error(self, task):
        """Test a time out with no error records a TaskTimeoutError"""
        task.start()
        task.timeout()
        assert isinstance(task.error, TaskTimeoutError)
        assert task.state.error == "TaskTimeoutError: Task (Task A) timed out"

class TestFail:
    """Test failing tasks"""

    def test_fail_overrides_everything_but_rejected(self, task):
        """Test fail from unstarted, completed and timed out"""
        assert task.fail(ValueError("1")) == 1
        task.complete()
        assert task.fail(ValueError("2")) == 1
        task.timeout(override_completed=True)
        assert task.fail(ValueError("3")) == 1
        assert task.failed
        assert task.state.error == "ValueError: 3"

        task.reject("r")
        assert task.fail(ValueError("4")) == 0
        assert task.rejected

    def test_fail_requires_error(self, task):
        """Test failing without an error is misuse"""
        with pytest.raises(ValueError):
            task.fail(None)

    def test_fail_as(self, task):
        """Test a custom failed state name"""
        task.fail_as(StateNames.LOGIC_FLAWED, RuntimeError("bug"))
        assert task.failed
        assert task.state.name == "LogicFlawed"

    def test_fail_recursive(self, task):
        """Test recursive fail"""
        assert task.fail(ValueError("x"), recursive=True) == 4

class TestReject:
    """Test rejecting, discarding and abandoning tasks"""

    def test_reject_is_idempotent(self, task):
        """Test second reject changes nothing"""
        assert task.reject("No longer needed") == 1
        assert task.reject("No longer needed") == 0
        assert task.is_rejected()
        assert task.state.reason == "No longer needed"

    def test_rejected_is_terminal(self, task):
        """Test no transition but reset leaves rejected"""
        task.reject("r")
        assert task.start() == 0
        assert task.complete(override_timed_out=True) == 0
        assert task.fail(ValueError("x")) == 0
        assert task.timeout(override_completed=True, override_unstarted=True) == 0
        assert task.discard("d") == 0
        assert task.is_rejected()

    def test_reject_as(self, task):
        """Test a custom rejected state name"""
        task.reject_as(StateNames.FATAL, "Unrecoverable", RuntimeError("boom"))
        assert task.rejected
        assert task.state.name == "FATAL"
        assert task.state.error == "RuntimeError: boom"

    def test_discard_and_abandon(self, task):
        """Test the named rejected sub-variants"""
        sub_a1 = task.get_sub_task("Sub A1")
        sub_a2 = task.get_sub_task("Sub A2")
        assert sub_a1.discard("Discarded") == 1
        assert sub_a2.abandon("Abandoned") == 1
        assert sub_a1.is_discarded()
        assert sub_a2.is_abandoned()

    def test_recursive_reject_counts_only_changes(self, task):
        """Test already rejected nodes are skipped and not counted"""
        task.get_sub_task("Sub A2").reject("r")
        assert task.abandon("gone", recursive=True) == 3
        assert task.get_sub_task("Sub A2").is_rejected()
        assert task.is_abandoned()

    def test_discard_if_over_attempted(self, task):
        """Test only tasks with too many attempts are discarded"""
        for _ in range(3):
            task.reset()
            task.start()
        assert task.attempts == 3

        assert task.discard_if_over_attempted(3) == 0
        assert task.started
        assert task.discard_if_over_attempted(2) == 1
        assert task.is_discarded()
        assert "3" in task.state.reason

class TestAttempts:
    """Test attempt counters"""

    def test_increment_and_decrement(self, task):
        """Test counters move together on increment"""
        assert task.increment_attempts() == 1
        assert task.increment_attempts() == 1
        assert task.decrement_attempts() == 1
        assert task.attempts == 1
        assert task.total_attempts == 2

    def test_decrement_never_goes_negative(self, task):
        """Test decrement stops at zero"""
        assert task.decrement_attempts() == 0
        assert task.attempts == 0

    def test_no_attempts_once_finalised(self, task):
        """Test finalised tasks do not accrue attempts"""
        task.complete()
        assert task.increment_attempts() == 0
        assert task.attempts == 0

    def test_recursive_increment(self, task):
        """Test recursive increment skips finalised sub-tasks"""
        task.get_sub_task("Sub A2").complete()
        assert task.increment_attempts(recursive=True) == 3
        assert task.get_sub_task("Sub A2").attempts == 0

class TestFinalisation:
    """Test finalisation checks"""

    def test_fully_finalised(self, task):
        """Test all descendants must be finalised"""
        task.complete()
        assert task.finalised
        assert not task.is_fully_finalised()

        task.complete(recursive=True)
        task.get_sub_task("Sub A2").reset()
        task.get_sub_task("Sub A2").reject("r")
        assert task.is_fully_finalised()
