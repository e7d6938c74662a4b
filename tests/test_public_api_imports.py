def test_public_imports() -> None:
    # A lightweight contract test: keep the most common imports stable.
    import tweezpy

    assert hasattr(tweezpy, "__version__")

    from tweezpy import Bsc, Gaussian, Mathieu, PlaneWave, forcetorque  # noqa: F401
    from tweezpy import AccuracyWarning, BasisError, TweezpyError  # noqa: F401

    assert issubclass(BasisError, TweezpyError)
