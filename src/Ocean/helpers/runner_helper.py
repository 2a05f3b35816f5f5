"""MPI worker - invoked via: mpiexec -n X python -m Ocean.helpers.runner_helper '{config}'"""

import json
import logging
import sys

from mpi4py import MPI

from Ocean.datastructures import GlobalParams
from Ocean.runner import run_simulation

logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")

config = json.loads(sys.argv[1])
output_path = config.pop("output", None)
comm = MPI.COMM_WORLD

params = GlobalParams(**config)
model, metrics = run_simulation(params, comm)

if comm.Get_rank() == 0 and output_path:
    import pandas as pd

    row = {**params.to_mlflow(), **metrics.to_mlflow()}
    pd.DataFrame([row]).to_json(output_path, orient="records")
    # Just print the path - runner.py will load the JSON
    print(f"RESULT:{output_path}")
