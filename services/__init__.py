"""
Services Package.

Stage services of the sensor data pipeline and the facade wiring them.

Structure:
    lifecycle_service.py:   Table group truncation
    upload_service.py:      Extraction, partitioning, patch upload
    association_service.py: Beams, point-model and beam-model associations
    download_service.py:    Reconstruction of associated point clouds
    pipeline.py:            SensorDataPipeline facade

Import services from their modules; this package does not import them
eagerly so worker processes stay light.
"""
