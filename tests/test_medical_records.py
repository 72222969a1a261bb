import pytest

from medledger.ledger import AuthError, Env
from medledger.medical_records import (
    TIMELOCK_SECS,
    MedicalRecords,
    RecordsError,
    RecordsErrorCode,
    Role,
)


@pytest.fixture
def setup():
    env = Env()
    env.mock_all_auths()
    contract = MedicalRecords(env)
    admin = env.generate_address()
    contract.initialize(admin)
    return env, contract, admin


@pytest.fixture
def staffed(setup):
    env, contract, admin = setup
    doctor = env.generate_address()
    patient = env.generate_address()
    contract.manage_user(admin, doctor, Role.DOCTOR)
    contract.manage_user(admin, patient, Role.PATIENT)
    return env, contract, admin, doctor, patient


def _add(contract, doctor, patient, confidential=False, diagnosis="Diagnosis",
         category="Modern", tags=("tag",), treatment_type="Type"):
    return contract.add_record(
        doctor, patient, diagnosis, "Treatment", confidential, list(tags), category, treatment_type
    )


def test_add_and_get_record(staffed):
    _, contract, _, doctor, patient = staffed
    record_id = contract.add_record(
        doctor, patient, "Common cold", "Rest and fluids", False,
        ["respiratory"], "Modern", "Medication",
    )
    record = contract.get_record(patient, record_id)
    assert record is not None
    assert record.patient_id == patient
    assert record.doctor_id == doctor
    assert record.diagnosis == "Common cold"
    assert record.treatment == "Rest and fluids"
    assert record.is_confidential is False
    assert record.tags == ("respiratory",)


def test_get_patient_records(staffed):
    _, contract, _, doctor, patient = staffed
    id1 = contract.add_record(doctor, patient, "Diagnosis 1", "Treatment 1", False,
                              ["herbal"], "Traditional", "Herbal Therapy")
    id2 = contract.add_record(doctor, patient, "Diagnosis 2", "Treatment 2", True,
                              ["spiritual"], "Spiritual", "Prayer")
    assert contract.get_record(patient, id1).diagnosis == "Diagnosis 1"
    assert contract.get_record(patient, id2).diagnosis == "Diagnosis 2"


def test_role_based_access(staffed):
    _, contract, admin, doctor, patient = staffed
    record_id = _add(contract, doctor, patient, confidential=True,
                     category="Spiritual", diagnosis="Diagnosis 2")
    for reader in (patient, doctor, admin):
        assert contract.get_record(reader, record_id).diagnosis == "Diagnosis 2"


def test_other_doctor_cannot_read_confidential(staffed):
    env, contract, admin, doctor, patient = staffed
    other = env.generate_address()
    contract.manage_user(admin, other, Role.DOCTOR)
    secret_id = _add(contract, doctor, patient, confidential=True)
    open_id = _add(contract, doctor, patient, confidential=False)
    assert contract.get_record(other, open_id).doctor_id == doctor
    with pytest.raises(RecordsError, match="Unauthorized access") as exc:
        contract.get_record(other, secret_id)
    assert exc.value.code is None


def test_get_missing_record_is_none(setup):
    _, contract, admin = setup
    assert contract.get_record(admin, 42) is None


def test_deactivate_user(staffed):
    _, contract, admin, doctor, patient = staffed
    assert contract.deactivate_user(admin, doctor) is True
    with pytest.raises(RecordsError) as exc:
        _add(contract, doctor, patient, category="Traditional")
    assert exc.value.code is RecordsErrorCode.NOT_AUTHORIZED


def test_deactivate_unknown_user_returns_false(setup):
    env, contract, admin = setup
    assert contract.deactivate_user(admin, env.generate_address()) is False


def test_pause_blocks_manage_user(staffed):
    env, contract, admin, doctor, patient = staffed
    _add(contract, doctor, patient, category="Traditional")
    assert contract.pause(admin) is True
    with pytest.raises(RecordsError) as exc:
        contract.manage_user(admin, env.generate_address(), Role.DOCTOR)
    assert exc.value.code is RecordsErrorCode.CONTRACT_PAUSED
    with pytest.raises(RecordsError) as exc:
        _add(contract, doctor, patient)
    assert exc.value.code is RecordsErrorCode.CONTRACT_PAUSED
    with pytest.raises(RecordsError, match="Contract is paused"):
        contract.get_history(patient, patient, 0, 1)


def test_pause_unpause_restores_operations(staffed):
    env, contract, admin, doctor, patient = staffed
    _add(contract, doctor, patient, category="Traditional")
    contract.pause(admin)
    assert contract.unpause(admin) is True
    assert contract.manage_user(admin, env.generate_address(), Role.DOCTOR) is True
    assert _add(contract, doctor, patient, category="Traditional") == 2


def test_pause_events(setup):
    env, contract, admin = setup
    env.advance(7)
    contract.pause(admin)
    contract.unpause(admin)
    assert [(e.topics, e.data) for e in env.events] == [
        (("Paused",), (admin, 7)),
        (("Unpaused",), (admin, 7)),
    ]


def test_non_admin_cannot_pause(staffed):
    _, contract, _, doctor, _ = staffed
    with pytest.raises(RecordsError) as exc:
        contract.pause(doctor)
    assert exc.value.code is RecordsErrorCode.NOT_AUTHORIZED


def test_recovery_before_timelock_fails(setup):
    env, contract, admin1 = setup
    admin2 = env.generate_address()
    contract.manage_user(admin1, admin2, Role.ADMIN)
    proposal_id = contract.propose_recovery(
        admin1, env.generate_address(), env.generate_address(), 100
    )
    assert proposal_id > 0
    assert contract.approve_recovery(admin2, proposal_id) is True
    with pytest.raises(RecordsError) as exc:
        contract.execute_recovery(admin1, proposal_id)
    assert exc.value.code is RecordsErrorCode.TIMELOCK_NOT_ELAPSED


def test_recovery_after_timelock_succeeds(setup):
    env, contract, admin1 = setup
    admin2 = env.generate_address()
    contract.manage_user(admin1, admin2, Role.ADMIN)
    proposal_id = contract.propose_recovery(
        admin1, env.generate_address(), env.generate_address(), 100
    )
    contract.approve_recovery(admin2, proposal_id)
    env.advance(TIMELOCK_SECS + 1)
    assert contract.execute_recovery(admin1, proposal_id) is True
    with pytest.raises(RecordsError) as exc:
        contract.execute_recovery(admin1, proposal_id)
    assert exc.value.code is RecordsErrorCode.PROPOSAL_ALREADY_EXECUTED
    with pytest.raises(RecordsError, match="already executed"):
        contract.approve_recovery(admin2, proposal_id)


def test_recovery_needs_two_distinct_approvals(setup):
    env, contract, admin = setup
    proposal_id = contract.propose_recovery(
        admin, env.generate_address(), env.generate_address(), 5
    )
    assert contract.approve_recovery(admin, proposal_id) is True
    env.advance(TIMELOCK_SECS)
    with pytest.raises(RecordsError) as exc:
        contract.execute_recovery(admin, proposal_id)
    assert exc.value.code is RecordsErrorCode.NOT_ENOUGH_APPROVAL


def test_recovery_unknown_proposal(setup):
    _, contract, admin = setup
    with pytest.raises(RecordsError, match="Proposal not found"):
        contract.approve_recovery(admin, 99)


def test_monotonic_record_ids(staffed):
    _, contract, _, doctor, patient = staffed
    ids = [_add(contract, doctor, patient, diagnosis=f"Diagnosis {i}") for i in (1, 2, 3)]
    assert ids == [1, 2, 3]


def test_unique_record_ids(setup):
    env, contract, admin = setup
    doctor1, doctor2, patient = (env.generate_address() for _ in range(3))
    contract.manage_user(admin, doctor1, Role.DOCTOR)
    contract.manage_user(admin, doctor2, Role.DOCTOR)
    contract.manage_user(admin, patient, Role.PATIENT)
    first = _add(contract, doctor1, patient)
    second = _add(contract, doctor2, patient)
    assert first != second


def test_record_ordering(staffed):
    _, contract, _, doctor, patient = staffed
    ids = [_add(contract, doctor, patient, diagnosis=f"Diagnosis {i}") for i in range(5)]
    assert all(later > earlier for earlier, later in zip(ids, ids[1:]))


def test_record_counter_isolation(staffed):
    env, contract, admin, doctor, patient = staffed
    record_id1 = _add(contract, doctor, patient)
    proposal_id = contract.propose_recovery(
        admin, env.generate_address(), env.generate_address(), 100
    )
    record_id2 = _add(contract, doctor, patient)
    assert (record_id1, proposal_id, record_id2) == (1, 2, 3)


def test_get_history_pagination_and_access(setup):
    env, contract, admin = setup
    doctor1, doctor2, patient = (env.generate_address() for _ in range(3))
    contract.manage_user(admin, doctor1, Role.DOCTOR)
    contract.manage_user(admin, doctor2, Role.DOCTOR)
    contract.manage_user(admin, patient, Role.PATIENT)
    contract.add_record(doctor1, patient, "Diagnosis 1", "Treatment 1", False,
                        ["tag1"], "Modern", "Medication")
    contract.add_record(doctor1, patient, "Diagnosis 2", "Treatment 2", True,
                        ["tag2"], "Traditional", "Herbal")
    record_id3 = contract.add_record(doctor1, patient, "Diagnosis 3", "Treatment 3", False,
                                     ["tag3"], "Modern", "Surgery")

    assert len(contract.get_history(patient, patient, 0, 3)) == 3
    assert len(contract.get_history(doctor2, patient, 0, 1)) == 1
    page2 = contract.get_history(doctor2, patient, 2, 1)
    assert len(page2) == 1
    assert page2[0][0] == record_id3
    assert len(contract.get_history(doctor2, patient, 0, 3)) == 2
    assert [rid for rid, _ in contract.get_history(admin, patient, 0, 3)] == [1, 2, 3]
    assert contract.get_history(patient, patient, 3, 1) == []


@pytest.mark.parametrize(
    "kwargs, code",
    [
        ({"category": "Alien"}, RecordsErrorCode.INVALID_CATEGORY),
        ({"treatment_type": ""}, RecordsErrorCode.EMPTY_TREATMENT),
        ({"tags": ("ok", "")}, RecordsErrorCode.EMPTY_TAG),
    ],
)
def test_add_record_validation(staffed, kwargs, code):
    _, contract, _, doctor, patient = staffed
    with pytest.raises(RecordsError) as exc:
        _add(contract, doctor, patient, **kwargs)
    assert exc.value.code is code


def test_patient_cannot_add_record(staffed):
    _, contract, _, _, patient = staffed
    with pytest.raises(RecordsError) as exc:
        _add(contract, patient, patient)
    assert exc.value.code is RecordsErrorCode.NOT_AUTHORIZED
    assert contract.get_history(patient, patient, 0, 10) == []


def test_record_added_event(staffed):
    env, contract, _, doctor, patient = staffed
    record_id = _add(contract, doctor, patient, confidential=True)
    last = env.events[-1]
    assert last.topics == ("RecordAdded",)
    assert last.data == (patient, record_id, True)


def test_user_roles(staffed):
    env, contract, admin, doctor, patient = staffed
    assert contract.get_user_role(admin) is Role.ADMIN
    assert contract.get_user_role(doctor) is Role.DOCTOR
    assert contract.get_user_role(patient) is Role.PATIENT
    assert contract.get_user_role(env.generate_address()) is Role.NONE


def test_double_initialize_fails(setup):
    env, contract, _ = setup
    with pytest.raises(RecordsError, match="already initialized"):
        contract.initialize(env.generate_address())


def test_initialize_requires_auth():
    env = Env()
    contract = MedicalRecords(env)
    admin = env.generate_address()
    with pytest.raises(AuthError):
        contract.initialize(admin)
    env.authorize(admin)
    assert contract.initialize(admin) is True