from .data_store import DataStore
from .local_data_store import LocalDataStore
from .readers import read_vector_dataset
from .writers import write_vector_dataset
