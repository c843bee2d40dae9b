# tests/unit/domain/models/test_master_slave.py
import pytest
from datetime import datetime, timedelta, timezone

from application.services.task_factory import TaskFactory
from domain.errors import TaskDefinitionError
from domain.models.task_definition import define_task
from domain.models.task_state import StateNames

T0 = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

@pytest.fixture
def factory():
    return TaskFactory()

@pytest.fixture
def definition():
    definition = define_task("Process message", lambda task: None)
    definition.define_sub_tasks(["Validate", "Store"])
    return definition

@pytest.fixture
def slaves(factory, definition):
    return [factory.create_task(definition) for _ in range(3)]

class TestMasterAggregation:
    """Test a master task aggregating its slaves"""

    def test_master_takes_least_advanced_slave_state(self, factory, definition, slaves):
        """Test master state is the least advanced slave state"""
        slaves[0].fail(ValueError("x"))
        slaves[2].complete()

        master = factory.create_master_task(definition, slaves[:2])
        assert master.is_master_task()
        assert master.unstarted

    def test_master_completed_once_all_slaves_completed(self, factory, definition, slaves):
        """Test an unstarted master follows its slaves as they change"""
        slaves[0].fail(ValueError("x"))
        master = factory.create_master_task(definition, slaves[:2])
        assert master.unstarted

        for slave in slaves[:2]:
            slave.complete()
        assert master.completed
        assert master.finalised

    def test_master_state_is_saved_as_aggregated(self, factory, definition, slaves):
        """Test the snapshot of an unstarted master holds its slaves' state"""
        master = factory.create_master_task(definition, slaves[:2])
        slaves[0].start()
        slaves[1].start()
        assert master.to_dict()["state"]["kind"] == "STARTED"

    def test_reset_master_follows_slaves_again(self, factory, definition, slaves):
        """Test a reset master returns to aggregating its slaves"""
        master = factory.create_master_task(definition, slaves[:2])
        master.fail(ValueError("x"))
        for slave in slaves[:2]:
            slave.complete()
        assert master.failed

        assert master.reset() == 1
        assert master.completed

    def test_master_attempts_and_timing(self, factory, definition, slaves):
        """Test minimum attempts and timing of the most recently begun slave"""
        slaves[0].start(T0)
        slaves[0].reset()
        slaves[0].start(T0 + timedelta(seconds=1))
        slaves[1].start(T0 + timedelta(seconds=5))
        slaves[1].ended_at(T0 + timedelta(seconds=8))
        slaves[1].reset()

        master = factory.create_master_task(definition, slaves[:2])
        assert master.attempts == 1
        assert master.total_attempts == 1
        assert master.began == T0 + timedelta(seconds=5)
        assert master.took == timedelta(seconds=3)

    def test_explicitly_driven_master_is_not_overridden(self, factory, definition, slaves):
        """Test slave states only aggregate into an unstarted master"""
        master = factory.create_task(definition)
        master.start()
        slaves[0].complete()
        master.set_slave_tasks(slaves[:1])
        assert master.started
        slaves[0].reject("r")
        assert master.started

    def test_sub_tasks_become_masters(self, factory, definition, slaves):
        """Test slaves are mirrored by sub-task name"""
        master = factory.create_master_task(definition, slaves)
        validate = master.get_sub_task("Validate")
        assert validate.slave_tasks == [s.get_sub_task("Validate") for s in slaves]

class TestMasterPropagation:
    """Test transitions on a master fanning out to its slaves"""

    def test_transitions_applied_to_slaves(self, factory, definition, slaves):
        """Test a start on the master starts every slave"""
        master = factory.create_master_task(definition, slaves)
        assert master.start() == 4
        assert all(s.started and s.attempts == 1 for s in slaves)

    def test_finalised_slaves_are_skipped(self, factory, definition, slaves):
        """Test completed and rejected slaves keep their state"""
        master = factory.create_master_task(definition, slaves)
        slaves[0].complete()
        slaves[1].reject("r")

        assert master.fail(ValueError("x")) == 2
        assert slaves[0].completed
        assert slaves[1].is_rejected()
        assert slaves[2].failed

    def test_recursive_transitions_reach_slave_sub_tasks_once(self, factory, definition, slaves):
        """Test each slave sub-task is visited exactly once"""
        master = factory.create_master_task(definition, slaves)
        assert master.complete(recursive=True) == 12
        for slave in slaves:
            assert slave.is_fully_finalised()

    def test_custom_state_names_propagate(self, factory, definition, slaves):
        """Test slaves take the same named state"""
        master = factory.create_master_task(definition, slaves)
        master.complete_as(StateNames.SKIPPED)
        assert all(s.state.name == "Skipped" for s in slaves)

class TestMasterValidation:
    """Test master task construction errors"""

    def test_master_without_slaves(self, factory, definition):
        """Test a master needs slaves"""
        with pytest.raises(TaskDefinitionError):
            factory.create_master_task(definition, [])

    def test_slaves_must_share_definition(self, factory, definition, slaves):
        """Test mismatched slaves are rejected"""
        other = define_task("Process message", lambda task: None)
        other.define_sub_tasks(["Validate", "Store"])
        with pytest.raises(TaskDefinitionError):
            factory.create_master_task(definition, slaves + [factory.create_task(other)])

    def test_set_slave_tasks_validates(self, factory, definition):
        """Test set_slave_tasks rejects non-tasks"""
        master = factory.create_task(definition)
        with pytest.raises(TaskDefinitionError):
            master.set_slave_tasks(["not a task"])

    def test_task_cannot_be_its_own_slave(self, factory, definition):
        """Test a task is rejected as its own slave"""
        task = factory.create_task(definition)
        with pytest.raises(TaskDefinitionError):
            task.set_slave_tasks([task])
        assert not task.is_master_task()
        assert task.unstarted

    def test_slave_cannot_be_master_of_its_master(self, factory, definition, slaves):
        """Test a master/slave cycle is rejected, directly or through other slaves"""
        master = factory.create_master_task(definition, slaves[:1])
        with pytest.raises(TaskDefinitionError):
            slaves[0].set_slave_tasks([master])

        slaves[1].set_slave_tasks([master])
        with pytest.raises(TaskDefinitionError):
            slaves[0].set_slave_tasks([slaves[1]])
        assert slaves[0].unstarted
