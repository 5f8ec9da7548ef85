from .io.local_data_store import LocalDataStore
from .io.readers import read_vector_dataset
from .io.writers import write_vector_dataset
