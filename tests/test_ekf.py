import copy
import gc
import logging

import numpy as np
import pytest

from kafi import (CovarianceUpdateMethod, DimensionMismatchError, ExtendedKalmanFilter,
                  FilterConfig, JacobianFunction, ObservationExpiredError,
                  SingularInnovationError)
from kafi.models import create_identity_jacobian, create_identity_mapping, VehicleModel


def halving_transition(n):
    """f(x) = x / 2 with its Jacobian."""
    def f(state, out):
        np.multiply(state, 0.5, out=out)

    partials = [[(lambda s: 0.5) if row == col else (lambda s: 0.0) for col in range(n)]
                for row in range(n)]
    return JacobianFunction(f, partials)


def test_temperature_fusion(temperature_filter):
    # the first reading of both thermometers, their mean (20.64) is the starting state
    first_observation = np.array([18.625, 20.0])
    temperature_filter.set_current_observation(first_observation)

    state, prediction_error, gain = temperature_filter.step()

    assert state[0] == pytest.approx(19.62, abs=0.01)
    assert state[0] == pytest.approx(19.6226, abs=1e-4)
    assert prediction_error[0, 0] == pytest.approx(0.245255, abs=1e-6)
    np.testing.assert_allclose(gain, [[0.383212, 0.383212]], atol=1e-6)
    assert temperature_filter.update_count == 1
    assert temperature_filter.prediction_count == 1


def test_identity_models_pull_state_towards_observation():
    start = np.array([0.0, 10.0, -4.0])
    observation = np.array([1.0, 5.0, 3.0])
    ekf = ExtendedKalmanFilter(create_identity_mapping(3), create_identity_mapping(3),
                               start, np.eye(3) * 0.1, np.eye(3) * 0.5)

    ekf.set_current_observation(observation)
    state, _, _ = ekf.step()

    low = np.minimum(start, observation)
    high = np.maximum(start, observation)
    assert np.all(state > low)
    assert np.all(state < high)


def test_covariance_stays_symmetric():
    rng = np.random.default_rng(0)
    model = VehicleModel()
    observations = rng.normal(size=(200, 5))
    P0 = np.diag(rng.uniform(0.5, 2.0, size=7))
    ekf = ExtendedKalmanFilter(model.transition(), model.observation(),
                               model.initial_state(observations[0]),
                               model.default_process_noise(), model.default_sensor_noise(), P0)

    for index, observation in enumerate(observations):
        if index % 2 == 0:
            ekf.set_current_observation(observation)
        _, P, _ = ekf.step()
        np.testing.assert_allclose(P, P.T, atol=1e-9)


def test_symmetrize_gives_exact_symmetry():
    model = VehicleModel()
    ekf = ExtendedKalmanFilter(model.transition(), model.observation(), np.zeros(7),
                               model.default_process_noise(), model.default_sensor_noise(),
                               config=FilterConfig(symmetrize=True))
    observation = np.array([0.1, -0.2, 5.0, 0.3, 0.01])
    for _ in range(20):
        ekf.set_current_observation(observation)
        _, P, _ = ekf.step()
        np.testing.assert_array_equal(P, P.T)


def test_prediction_only_never_touches_observation_model(counted_broadcast):
    h, counter = counted_broadcast
    ekf = ExtendedKalmanFilter(halving_transition(1), h, np.array([16.0]),
                               np.array([[0.01]]), np.eye(2))

    for expected in (8.0, 4.0, 2.0, 1.0):
        state, _, gain = ekf.step()
        assert state[0] == pytest.approx(expected)
        np.testing.assert_array_equal(gain, np.zeros((1, 2)))

    assert counter.evaluations == 0
    assert counter.derivatives == 0
    assert ekf.update_count == 0
    assert ekf.prediction_count == 4


def test_prediction_uses_jacobian_at_pre_transition_state():
    # f(x) = x^2, so F must be 2 * x evaluated before the transition
    f = JacobianFunction(lambda s, out: np.multiply(s, s, out=out), [[lambda s: 2.0 * s[0]]])
    ekf = ExtendedKalmanFilter(f, create_identity_jacobian(1, 1), np.array([3.0]),
                               np.array([[0.0]]), np.array([[1.0]]))
    state, P, _ = ekf.step()
    assert state[0] == pytest.approx(9.0)
    assert P[0, 0] == pytest.approx(36.0)


def test_latest_observation_wins(temperature_filter):
    first = np.array([100.0, 100.0])
    second = np.array([18.625, 20.0])
    temperature_filter.set_current_observation(first)
    temperature_filter.set_current_observation(second)

    state, _, _ = temperature_filter.step()

    assert state[0] == pytest.approx(19.6226, abs=1e-4)
    assert temperature_filter.update_count == 1


def test_flag_is_consumed_by_update(counted_broadcast):
    h, counter = counted_broadcast
    ekf = ExtendedKalmanFilter(create_identity_jacobian(1, 1), h, np.array([20.0]),
                               np.array([[0.05]]), np.eye(2) * 0.64)
    observation = np.array([21.0, 22.0])
    ekf.set_current_observation(observation)
    assert ekf.new_data_available

    ekf.step()
    assert not ekf.new_data_available
    after_update = ekf.state

    state, _, _ = ekf.step()

    assert ekf.update_count == 1
    assert ekf.prediction_count == 2
    assert counter.evaluations == 1
    np.testing.assert_array_equal(state, after_update)


def test_column_vector_observation_is_accepted(temperature_filter):
    observation = np.array([[18.625], [20.0]])
    temperature_filter.set_current_observation(observation)
    state, _, _ = temperature_filter.step()
    assert state[0] == pytest.approx(19.6226, abs=1e-4)


def test_step_returns_independent_copies(temperature_filter):
    observation = np.array([18.625, 20.0])
    temperature_filter.set_current_observation(observation)
    first = temperature_filter.step()
    kept_state = first.state.copy()

    first.state[0] = -1.0
    first.prediction_error[0, 0] = -1.0
    np.testing.assert_array_equal(temperature_filter.state, kept_state)

    temperature_filter.set_current_observation(observation)
    temperature_filter.step()
    assert first.gain[0, 0] == pytest.approx(0.383212, abs=1e-6)


def test_working_memory_is_reused(temperature_filter):
    buffers = [temperature_filter._state, temperature_filter._prediction_error,
               temperature_filter._gain, temperature_filter._h_temp,
               temperature_filter._f_jacobian_temp, temperature_filter._h_jacobian_temp]
    observation = np.array([18.625, 20.0])
    for _ in range(5):
        temperature_filter.set_current_observation(observation)
        temperature_filter.step()

    current = [temperature_filter._state, temperature_filter._prediction_error,
               temperature_filter._gain, temperature_filter._h_temp,
               temperature_filter._f_jacobian_temp, temperature_filter._h_jacobian_temp]
    assert all(before is after for before, after in zip(buffers, current))


def test_joseph_form_matches_standard_form():
    rng = np.random.default_rng(3)
    model = VehicleModel()
    observations = rng.normal(size=(50, 5))
    filters = [
        ExtendedKalmanFilter(model.transition(), model.observation(), np.zeros(7),
                             model.default_process_noise(), model.default_sensor_noise(),
                             config=FilterConfig(covariance_update=method))
        for method in (CovarianceUpdateMethod.STANDARD, "joseph")
    ]
    assert filters[1].config.covariance_update is CovarianceUpdateMethod.JOSEPH

    for observation in observations:
        results = []
        for ekf in filters:
            ekf.set_current_observation(observation)
            results.append(ekf.step())
        np.testing.assert_allclose(results[0].state, results[1].state, atol=1e-8)
        np.testing.assert_allclose(results[0].prediction_error, results[1].prediction_error,
                                   atol=1e-8)


@pytest.mark.parametrize("kwargs", [
    {'starting_state': np.zeros(2)},
    {'process_noise': np.eye(2)},
    {'sensor_noise': np.eye(3)},
    {'prediction_error': np.eye(3)},
])
def test_mismatched_matrices_fail_at_construction(kwargs):
    arguments = dict(f=create_identity_jacobian(1, 1), h=create_identity_jacobian(1, 2),
                     starting_state=np.array([20.64]), process_noise=np.array([[0.05]]),
                     sensor_noise=np.eye(2) * 0.64)
    arguments.update(kwargs)
    with pytest.raises(DimensionMismatchError):
        ExtendedKalmanFilter(**arguments)


def test_mismatched_jacobian_functions_fail_at_construction():
    # h declared as R^2 -> R^2 while f works on R^1
    with pytest.raises(DimensionMismatchError):
        ExtendedKalmanFilter(create_identity_jacobian(1, 1), create_identity_jacobian(2, 2),
                             np.array([1.0]), np.eye(1), np.eye(2))
    # f is not square
    with pytest.raises(DimensionMismatchError):
        ExtendedKalmanFilter(create_identity_jacobian(1, 2), create_identity_jacobian(1, 2),
                             np.array([1.0]), np.eye(1), np.eye(2))
    # wrong row count declared for the partial derivative grid
    with pytest.raises(DimensionMismatchError):
        JacobianFunction(lambda s, out: None, [[lambda s: 1.0]], input_dim=1, output_dim=2)


def test_non_jacobian_function_is_rejected():
    with pytest.raises(TypeError):
        ExtendedKalmanFilter(lambda s, out: None, create_identity_jacobian(1, 2),
                             np.array([1.0]), np.eye(1), np.eye(2))


def test_non_finite_noise_is_rejected():
    with pytest.raises(ValueError):
        ExtendedKalmanFilter(create_identity_jacobian(1, 1), create_identity_jacobian(1, 2),
                             np.array([1.0]), np.array([[np.nan]]), np.eye(2))


def test_observation_shape_is_checked(temperature_filter):
    with pytest.raises(DimensionMismatchError):
        temperature_filter.set_current_observation(np.zeros(3))
    with pytest.raises(TypeError):
        temperature_filter.set_current_observation([18.625, 20.0])
    assert not temperature_filter.new_data_available


def test_expired_observation_fails_loudly(temperature_filter, caplog):
    temperature_filter.set_current_observation(np.array([18.625, 20.0]))
    gc.collect()

    with caplog.at_level(logging.ERROR), pytest.raises(ObservationExpiredError):
        temperature_filter.step()

    assert any("released before step" in record.getMessage() for record in caplog.records)

    assert temperature_filter.prediction_count == 1
    assert temperature_filter.update_count == 0
    assert not temperature_filter.new_data_available


def test_singular_innovation_covariance_is_reported():
    # h ignores the state and R is zero, so H P H^T + R == 0
    h = JacobianFunction(lambda s, out: out.fill(0.0), [[lambda s: 0.0], [lambda s: 0.0]])
    ekf = ExtendedKalmanFilter(halving_transition(1), h, np.array([8.0]),
                               np.array([[0.1]]), np.zeros((2, 2)))
    observation = np.array([1.0, 2.0])
    ekf.set_current_observation(observation)

    with pytest.raises(SingularInnovationError) as excinfo:
        ekf.step()

    error = excinfo.value
    assert isinstance(error, np.linalg.LinAlgError)
    assert error.result.state[0] == pytest.approx(4.0)
    assert error.result.prediction_error[0, 0] == pytest.approx(0.35)
    np.testing.assert_array_equal(ekf.state, error.result.state)
    np.testing.assert_array_equal(ekf.gain, np.zeros((1, 2)))
    assert ekf.update_count == 0
    assert not ekf.new_data_available

    # the caller may carry on with prediction-only steps
    state, _, _ = ekf.step()
    assert state[0] == pytest.approx(2.0)


def test_ill_conditioned_innovation_covariance_is_reported():
    ekf = ExtendedKalmanFilter(create_identity_jacobian(1, 1), create_identity_jacobian(1, 2),
                               np.array([1.0]), np.array([[0.0]]), np.eye(2) * 1e-9,
                               config=FilterConfig(max_condition_number=1e3))
    observation = np.array([1.0, 1.0])
    ekf.set_current_observation(observation)
    with pytest.raises(SingularInnovationError) as excinfo:
        ekf.step()
    assert excinfo.value.condition_number > 1e3


def test_filter_cannot_be_copied(temperature_filter):
    with pytest.raises(TypeError):
        copy.copy(temperature_filter)
    with pytest.raises(TypeError):
        copy.deepcopy(temperature_filter)


def test_noise_matrices_are_read_only(temperature_filter):
    with pytest.raises(ValueError):
        temperature_filter.process_noise[0, 0] = 1.0
    with pytest.raises(ValueError):
        temperature_filter.sensor_noise[0, 0] = 1.0


def test_snapshot_reports_counts_and_matrices(temperature_filter):
    assert temperature_filter.snapshot().observation is None
    assert "(none)" in str(temperature_filter)

    observation = np.array([18.625, 20.0])
    temperature_filter.set_current_observation(observation)
    temperature_filter.step()

    snapshot = temperature_filter.snapshot()
    assert snapshot.update_count == 1
    assert snapshot.prediction_count == 1
    np.testing.assert_array_equal(snapshot.observation, observation)

    text = str(temperature_filter)
    assert text.startswith("Kafi:\n")
    assert "Update      # calls: 1" in text
    assert "Predictions # calls: 1" in text
    assert "[S] state" in text
    assert "[G] gain" in text
    assert "19.62" in text


def test_custom_initial_prediction_error():
    ekf = ExtendedKalmanFilter(create_identity_jacobian(1, 1), create_identity_jacobian(1, 2),
                               np.array([20.64]), np.array([[0.05]]), np.eye(2) * 0.64,
                               prediction_error=np.array([[4.0]]))
    np.testing.assert_array_equal(ekf.prediction_error, [[4.0]])
    _, P, _ = ekf.step()
    assert P[0, 0] == pytest.approx(4.05)


def test_mixed_scale_sensors_are_not_singular():
    # variances twenty orders of magnitude apart are still well posed
    noise = np.diag([1e-8, 1e6])
    ekf = ExtendedKalmanFilter(create_identity_mapping(2), create_identity_mapping(2),
                               np.zeros(2), np.zeros((2, 2)), noise, prediction_error=noise)
    observation = np.array([1e-4, 1e3])
    ekf.set_current_observation(observation)

    state, prediction_error, gain = ekf.step()

    np.testing.assert_allclose(gain, np.eye(2) * 0.5)
    np.testing.assert_allclose(state, [5e-5, 500.0])
    np.testing.assert_allclose(prediction_error, np.diag([5e-9, 5e5]))


def test_gain_matches_the_textbook_formula():
    model = VehicleModel()
    rng = np.random.default_rng(11)
    ekf = ExtendedKalmanFilter(model.transition(), model.observation(), rng.normal(size=7),
                               model.default_process_noise(), model.default_sensor_noise())
    observation = rng.normal(size=5)
    ekf.set_current_observation(observation)

    # the prediction alone, then the update by hand
    reference = ExtendedKalmanFilter(model.transition(), model.observation(), ekf.state,
                                     model.default_process_noise(), model.default_sensor_noise())
    reference.step()
    P = reference.prediction_error
    H = np.zeros((5, 7))
    model.observation().jacobian(reference.state, H)
    S = H @ P @ H.T + model.default_sensor_noise()
    expected_gain = P @ H.T @ np.linalg.inv(S)

    _, _, gain = ekf.step()
    np.testing.assert_allclose(gain, expected_gain, rtol=1e-8, atol=1e-10)


def test_failing_transition_leaves_the_filter_untouched():
    calls = {'count': 0}

    def doubling(state, out):
        calls['count'] += 1
        if calls['count'] > 1:
            raise RuntimeError("sensor model crashed")
        np.multiply(state, 2.0, out=out)

    ekf = ExtendedKalmanFilter(JacobianFunction(doubling, [[lambda s: 2.0]]),
                               create_identity_jacobian(1, 1), np.array([1.0]),
                               np.array([[0.0]]), np.array([[1.0]]))
    ekf.step()
    assert ekf.prediction_error[0, 0] == pytest.approx(4.0)

    with pytest.raises(RuntimeError):
        ekf.step()

    assert ekf.prediction_error[0, 0] == pytest.approx(4.0)
    assert ekf.state[0] == pytest.approx(2.0)
    assert ekf.prediction_count == 1


def test_snapshots_compare_by_identity(temperature_filter):
    first = temperature_filter.snapshot()
    second = temperature_filter.snapshot()
    assert first == first
    assert first != second
